from uuid import UUID

from pydantic import BaseModel, EmailStr, model_validator


class LoginRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"email": "yard.manager@example.com", "password": "Secret123"},
                {"username_or_email": "yard-manager", "password": "Secret123"},
            ]
        }
    }

    email: EmailStr | None = None
    username_or_email: str | None = None
    password: str

    @model_validator(mode="after")
    def ensure_identifier(self):
        if not self.email and not (self.username_or_email or "").strip():
            raise ValueError("email or username_or_email is required")
        return self

    @property
    def identifier(self) -> str:
        return str(self.email) if self.email else self.username_or_email.strip()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    trace_id: str


class MeResponse(BaseModel):
    """Identity as the stock service sees it: role plus the warehouses the user is assigned to."""

    id: UUID
    username: str
    email: str
    full_name: str | None
    role: str
    is_active: bool
    warehouse_ids: list[str]
    trace_id: str
