"""Authentication schemas."""

from pydantic import BaseModel, Field

EDITOR_ROLES = frozenset({"editor", "admin"})


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services."""

    user_id: str = Field(min_length=1)
    role: str = Field(default="client", min_length=1)
    display_name: str | None = None

    @property
    def is_editor(self) -> bool:
        return self.role in EDITOR_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def editor_name(self) -> str:
        return self.display_name or self.user_id
