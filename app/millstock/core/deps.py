from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError as PydanticValidationError

from app.millstock.core.context import RequestContext, build_request_context
from app.millstock.core.error_catalog import AppError, ErrorCatalog
from app.millstock.core.permissions import has_broad_warehouse_scope, has_permission
from app.millstock.core.security import TokenData, decode_token, oauth2_scheme
from app.millstock.db.session import get_db
from app.millstock.repos.users import UserRepository
from app.millstock.repos.warehouses import WarehouseRepository
from app.millstock.services.notifications import LoggingNotificationPublisher, NotificationPublisher


def get_current_token_data(token: str = Depends(oauth2_scheme)) -> TokenData:
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, PydanticValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_current_user(token_data: TokenData = Depends(get_current_token_data), db=Depends(get_db)):
    repo = UserRepository(db)
    user = repo.get_by_id(token_data.sub)
    if user is None:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    return user


def require_active_user(user=Depends(get_current_user)):
    if not user.is_active:
        raise AppError(ErrorCatalog.USER_INACTIVE)
    return user


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    context = build_request_context(
        user_id=token_data.sub,
        role=token_data.role,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.context = context
    return context


def require_permission(permission_key: str):
    def dependency(
        user=Depends(require_active_user),
        context: RequestContext = Depends(require_request_context),
    ):
        if not has_permission(user.role, permission_key):
            raise AppError(ErrorCatalog.PERMISSION_DENIED, details={"permission": permission_key})
        return context

    return dependency


def assigned_warehouse_ids(db, user) -> set[str] | None:
    """Warehouse ids the user may act on, or None when the role covers every warehouse."""
    if has_broad_warehouse_scope(user.role):
        return None
    return {str(warehouse_id) for warehouse_id in WarehouseRepository(db).assigned_warehouse_ids(str(user.id))}


def ensure_warehouse_scope(db, user, warehouse_id: str) -> None:
    allowed = assigned_warehouse_ids(db, user)
    if allowed is not None and str(warehouse_id) not in allowed:
        raise AppError(ErrorCatalog.WAREHOUSE_SCOPE_DENIED, details={"warehouse_id": str(warehouse_id)})


_default_publisher = LoggingNotificationPublisher()


def get_notification_publisher() -> NotificationPublisher:
    return _default_publisher


__all__ = [
    "assigned_warehouse_ids",
    "ensure_warehouse_scope",
    "get_current_token_data",
    "get_current_user",
    "get_notification_publisher",
    "require_active_user",
    "require_permission",
    "require_request_context",
]
