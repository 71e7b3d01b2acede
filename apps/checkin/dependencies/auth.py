"""Operator authentication for gate devices, vendor terminals and dashboards.

Tokens are issued by the external account service; this module only maps a
presented bearer token to an :class:`Operator`. ``Operator.username`` is the
identity written to the scan ledger as ``operator`` for every accepted scan or
sale, and the one per-operator sales statistics are grouped by.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


class Role(str, Enum):
    """What an operator is allowed to do at the event."""

    ADMIN = "admin"
    GATE = "gate"
    VENDOR = "vendor"
    VIEWER = "viewer"


@dataclass(frozen=True, slots=True)
class Operator:
    """Authenticated person or device acting on tickets."""

    username: str
    roles: frozenset[Role]

    def can(self, role: Role) -> bool:
        return Role.ADMIN in self.roles or role in self.roles


OPERATOR_TOKENS: dict[str, Operator] = {
    "admin-token": Operator("admin", frozenset({Role.ADMIN})),
    "gate-token": Operator("gate", frozenset({Role.GATE, Role.VIEWER})),
    "vendor-token": Operator("vendor", frozenset({Role.VENDOR, Role.VIEWER})),
    "viewer-token": Operator("viewer", frozenset({Role.VIEWER})),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_operator(token: str | None) -> Operator:
    """Return the operator owning ``token`` or raise 401."""

    operator = OPERATOR_TOKENS.get(token) if token else None
    if operator is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return operator


async def get_operator(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
) -> Operator:
    return resolve_operator(credentials.credentials if credentials is not None else None)


def role_required(role: Role) -> Callable[[Operator], Awaitable[Operator]]:
    async def dependency(operator: Annotated[Operator, Depends(get_operator)]) -> Operator:
        if not operator.can(role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Requires the {role.value} role")
        return operator

    return dependency


require_admin = role_required(Role.ADMIN)
require_gate = role_required(Role.GATE)
require_vendor = role_required(Role.VENDOR)
require_viewer = role_required(Role.VIEWER)

AdminUser = Annotated[Operator, Depends(require_admin)]
GateUser = Annotated[Operator, Depends(require_gate)]
VendorUser = Annotated[Operator, Depends(require_vendor)]
ViewerUser = Annotated[Operator, Depends(require_viewer)]
