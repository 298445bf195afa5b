# src/infrastructure/repositories/preference_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import User, UserPreference


class PreferenceRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, user_id: str) -> UserPreference | None:
        return self.db.execute(
            select(UserPreference).where(UserPreference.user_id == user_id)
        ).scalar_one_or_none()

    def get_user(self, user_id: str) -> User | None:
        return self.db.execute(
            select(User).where(User.id == user_id)
        ).scalar_one_or_none()
