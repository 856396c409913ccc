from sqlalchemy import inspect

from classcredits.database import engine
from classcredits.init_db import init_db


def test_init_db_creates_every_table():
    init_db()

    tables = set(inspect(engine).get_table_names())

    assert {
        "credit_transactions",
        "user_balance_cache",
        "class_instances",
        "bookings",
        "scheduled_notifications",
        "event_outbox",
        "class_discount_summaries",
    } <= tables
