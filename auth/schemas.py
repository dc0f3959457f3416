from pydantic import BaseModel, ConfigDict, field_validator

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLE_TECHNICIAN = "technician"
ROLE_CUSTOMER = "customer"
ALLOWED_ROLES = {ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_TECHNICIAN, ROLE_CUSTOMER}

# Roles allowed to touch shared reference data (apply-to-service, deletes).
PRIVILEGED_ROLES = {ROLE_ADMIN}
STAFF_ROLES = {ROLE_ADMIN, ROLE_EMPLOYEE}


def _normalize_role_label(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    return v.replace(" ", "_").replace("-", "_").lower()


class Actor(BaseModel):
    """The acting identity handed to core operations; the core never decides permissions."""
    model_config = ConfigDict(frozen=True)

    id: str
    role: str

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: str) -> str:
        v = _normalize_role_label(v)
        if v not in ALLOWED_ROLES:
            raise ValueError(f"role must be one of {sorted(ALLOWED_ROLES)}")
        return v

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES
