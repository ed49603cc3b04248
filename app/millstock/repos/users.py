from sqlalchemy import or_, select

from app.millstock.db.models import User
from app.millstock.repos.ids import as_uuid


class UserRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, user_id):
        parsed = as_uuid(user_id)
        if parsed is None:
            return None
        return self.db.get(User, parsed)

    def get_by_username_or_email(self, identifier: str):
        stmt = select(User).where(or_(User.username == identifier, User.email == identifier))
        return self.db.execute(stmt).scalars().first()
