from app.millstock.core.error_catalog import AppError, ErrorCatalog
from app.millstock.core.security import create_user_access_token, verify_password
from app.millstock.repos.users import UserRepository
from app.millstock.services.audit import RESULT_FAILURE, AuditEntry, AuditService


class AuthService:
    """Password login; every attempt against a known account lands in the audit trail."""

    def __init__(self, db):
        self.repo = UserRepository(db)
        self.audit = AuditService(db)

    def _authenticate(self, user, password: str):
        if user is None or not verify_password(password, user.hashed_password):
            raise AppError(ErrorCatalog.INVALID_CREDENTIALS)
        if not user.is_active:
            raise AppError(ErrorCatalog.USER_INACTIVE)
        return user

    def login(self, identifier: str, password: str):
        user = self.repo.get_by_username_or_email(identifier)
        try:
            self._authenticate(user, password)
        except AppError as exc:
            if user is not None:
                self.audit.record(
                    AuditEntry(
                        action="auth.login.failed",
                        actor=identifier,
                        user_id=str(user.id),
                        entity_type="user",
                        entity_id=str(user.id),
                        metadata={"error_code": exc.error.code},
                        result=RESULT_FAILURE,
                    )
                )
            raise
        self.audit.record(AuditEntry.for_user(user, "auth.login", entity_type="user", entity_id=str(user.id)))
        return user, create_user_access_token(user)
