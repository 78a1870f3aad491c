"""Security helpers (roles, caller identity, and access checks)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .domain_errors import Unauthorized


class Role(str, Enum):
    USER = "User"
    MANAGER = "Manager"
    ADMIN = "Admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str | "Role") -> "Role":
        if isinstance(value, Role):
            return value
        normalized = str(value).strip().lower()
        for role in cls:
            if role.value.lower() == normalized:
                return role
        raise ValueError(f"Unknown role: {value!r}")


_ROLE_RANK: dict[Role, int] = {
    Role.USER: 0,
    Role.MANAGER: 1,
    Role.ADMIN: 2,
}


@dataclass(frozen=True)
class Identity:
    """Caller identity supplied by the identity provider."""

    emp_id: str
    role: Role
    name: str | None = None


def require_role(
    identity: Identity,
    minimum: Role,
    *,
    code: str,
    message: str,
    details: dict | None = None,
) -> None:
    """Enforce a minimum role server-side."""
    if not identity.role.at_least(minimum):
        raise Unauthorized(code=code, message=message, details=details)


def can_edit_lookup_list(identity: Identity, owner_id: str | None) -> bool:
    """Lookup list ownership policy.

    Admins edit any list. Managers edit lists they own, or lists nobody owns
    yet. Plain users never edit lists.
    """
    if identity.role is Role.ADMIN:
        return True
    if identity.role is not Role.MANAGER:
        return False
    return owner_id is None or owner_id == identity.emp_id
