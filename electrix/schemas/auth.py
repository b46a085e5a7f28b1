from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator

from ..utils import format_rut


class Role(str, Enum):
    SUPERVISOR = "supervisor"
    WORKER = "trabajador"
    CLIENT = "cliente"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS = {
    Role.SUPERVISOR: "Supervisor",
    Role.WORKER: "Trabajador",
    Role.CLIENT: "Cliente",
}

# Roles that can be chosen when registering a team member
REGISTRABLE_ROLES = (Role.WORKER, Role.SUPERVISOR)


class Profile(BaseModel):
    id: str
    rut: Optional[str] = None
    full_name: Optional[str] = None
    role: Role
    is_active: bool = True
    created_at: Optional[str] = None

    @field_validator("is_active", mode="before")
    @classmethod
    def null_is_active(cls, v):
        # Rows created before the column existed come back as null
        return True if v is None else v


class RegisterRequest(BaseModel):
    rut: str
    full_name: str
    password: str
    role: Role = Role.WORKER

    @field_validator("rut", mode="before")
    @classmethod
    def normalize_rut(cls, v):
        return format_rut(str(v or ""))

    @field_validator("full_name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return str(v or "").strip()
