"""
Identity handed over by the upstream auth layer, and role capabilities.

Authentication itself happens before requests reach this service; the
gateway forwards the user id (and optionally a role) as headers.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Header

from pulsetime.errors import Forbidden, Unauthenticated, ValidationError


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Capability(str, Enum):
    TRACK_TIME = "track_time"
    VIEW_ANALYTICS = "view_analytics"
    RECOMPUTE_TOTALS = "recompute_totals"
    ADJUST_TOTALS = "adjust_totals"


ROLE_CAPABILITIES = {
    Role.USER: frozenset({Capability.TRACK_TIME, Capability.VIEW_ANALYTICS}),
    Role.MODERATOR: frozenset({Capability.TRACK_TIME, Capability.VIEW_ANALYTICS}),
    Role.ADMIN: frozenset(Capability),
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role = Role.USER

    def require(self, capability: Capability) -> None:
        if not has_capability(self.role, capability):
            raise Forbidden(
                f"Role '{self.role.value}' lacks capability '{capability.value}'",
                details={"role": self.role.value, "capability": capability.value},
            )


async def current_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Identity:
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated("Missing X-User-Id header")
    try:
        role = Role((x_user_role or Role.USER.value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {x_user_role}", details={"role": x_user_role})
    return Identity(user_id=x_user_id.strip(), role=role)
