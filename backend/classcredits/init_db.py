"""Create every classcredits table on the configured database."""

from classcredits.database import Base, engine
import classcredits.models  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    print("Creating classcredits tables...")
    init_db()
    print("Tables created.")
