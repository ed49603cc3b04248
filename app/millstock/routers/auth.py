from fastapi import APIRouter, Depends, Request

from app.millstock.core.deps import require_active_user
from app.millstock.db.session import get_db
from app.millstock.repos.warehouses import WarehouseRepository
from app.millstock.routers.common import trace_id_of
from app.millstock.schemas.auth import LoginRequest, MeResponse, TokenResponse
from app.millstock.services.auth import AuthService

router = APIRouter()


@router.post("/login", response_model=TokenResponse, summary="Exchange credentials for a bearer token")
def login(request: Request, payload: LoginRequest, db=Depends(get_db)):
    _user, token = AuthService(db).login(payload.identifier, payload.password)
    return TokenResponse(access_token=token, trace_id=trace_id_of(request))


@router.get("/me", response_model=MeResponse, summary="Current user and assigned warehouses")
def me(request: Request, current_user=Depends(require_active_user), db=Depends(get_db)):
    warehouse_ids = WarehouseRepository(db).assigned_warehouse_ids(str(current_user.id))
    return MeResponse(
        id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        full_name=current_user.full_name,
        role=current_user.role,
        is_active=current_user.is_active,
        warehouse_ids=sorted(str(warehouse_id) for warehouse_id in warehouse_ids),
        trace_id=trace_id_of(request),
    )
