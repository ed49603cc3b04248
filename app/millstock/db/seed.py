"""Bootstrap data: the administrator account and, optionally, the wood types catalogue.

    python -m app.millstock.db.seed
"""

from sqlalchemy import select

from app.millstock.core.config import settings
from app.millstock.core.security import get_password_hash
from app.millstock.db.models import MaterialType, User


def _ensure_superadmin(db) -> User:
    user = db.execute(select(User).where(User.username == settings.SUPERADMIN_USERNAME)).scalars().first()
    if user is not None:
        return user
    user = User(
        username=settings.SUPERADMIN_USERNAME,
        email=settings.SUPERADMIN_EMAIL,
        full_name="Administrator",
        hashed_password=get_password_hash(settings.SUPERADMIN_PASSWORD),
        role="ADMIN",
        is_active=True,
    )
    db.add(user)
    return user


def _ensure_material_types(db, names: list[str]) -> None:
    wanted = {name.strip() for name in names if name.strip()}
    if not wanted:
        return
    existing = set(db.execute(select(MaterialType.name).where(MaterialType.name.in_(wanted))).scalars())
    for name in sorted(wanted - existing):
        db.add(MaterialType(name=name))


def run_seed(db, *, material_types: list[str] | None = None) -> None:
    _ensure_superadmin(db)
    _ensure_material_types(db, settings.SEED_MATERIAL_TYPES if material_types is None else material_types)
    db.commit()


if __name__ == "__main__":
    from app.millstock.db.session import SessionLocal

    with SessionLocal() as session:
        run_seed(session)
