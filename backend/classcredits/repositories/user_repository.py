# backend/classcredits/repositories/user_repository.py
"""User lookups needed for booking snapshots and ownership checks."""

from sqlalchemy.orm import Session

from classcredits.models.user import User

from .base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)
