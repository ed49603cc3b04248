from sqlalchemy import select

from app.millstock.db.models import MaterialType, UserWarehouse, Warehouse
from app.millstock.repos.ids import as_uuid


class WarehouseRepository:
    def __init__(self, db):
        self.db = db

    def get(self, warehouse_id) -> Warehouse | None:
        parsed = as_uuid(warehouse_id)
        if parsed is None:
            return None
        return self.db.get(Warehouse, parsed)

    def assigned_warehouse_ids(self, user_id) -> list:
        parsed = as_uuid(user_id)
        if parsed is None:
            return []
        stmt = select(UserWarehouse.warehouse_id).where(UserWarehouse.user_id == parsed)
        return self.db.execute(stmt).scalars().all()


class MaterialTypeRepository:
    def __init__(self, db):
        self.db = db

    def get(self, material_type_id) -> MaterialType | None:
        parsed = as_uuid(material_type_id)
        if parsed is None:
            return None
        return self.db.get(MaterialType, parsed)

    def get_many(self, material_type_ids) -> dict[str, MaterialType]:
        ids = [parsed for parsed in (as_uuid(value) for value in material_type_ids) if parsed is not None]
        if not ids:
            return {}
        rows = self.db.execute(select(MaterialType).where(MaterialType.id.in_(ids))).scalars().all()
        return {str(row.id): row for row in rows}
