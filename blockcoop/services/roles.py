"""Owner / fund-manager / member resolution and access checks."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..contracts.registry import TokenRegistry
from ..errors import AccessDenied

logger = logging.getLogger(__name__)

OWNER = "owner"
MANAGER = "manager"  # owner or fund manager
MEMBER = "member"  # any connected wallet


@dataclass(frozen=True)
class Roles:
    address: str | None
    is_owner: bool = False
    is_fund_manager: bool = False

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    @property
    def names(self) -> list[str]:
        names = []
        if self.is_owner:
            names.append("owner")
        if self.is_fund_manager:
            names.append("fund_manager")
        if self.is_connected:
            names.append("member")
        return names

    def allows(self, level: str) -> bool:
        if level == OWNER:
            return self.is_owner
        if level == MANAGER:
            return self.is_owner or self.is_fund_manager
        if level == MEMBER:
            return self.is_connected
        raise ValueError(f"Unknown access level '{level}'")


async def resolve_roles(registry: TokenRegistry, address: str | None) -> Roles:
    """Query the registry for the roles held by ``address``."""
    if address is None:
        return Roles(address=None)
    owner, is_fund_manager = await asyncio.gather(
        registry.owner(), registry.is_fund_manager(address)
    )
    roles = Roles(
        address=address,
        is_owner=owner.lower() == address.lower(),
        is_fund_manager=bool(is_fund_manager),
    )
    logger.debug("Roles for %s: %s", address, ", ".join(roles.names))
    return roles


def require_access(roles: Roles, level: str, action: str = "") -> None:
    """Raise AccessDenied unless ``roles`` grant ``level``."""
    if roles.allows(level):
        return
    what = action or "This action"
    if not roles.is_connected:
        raise AccessDenied(f"{what} requires a connected wallet")
    if level == OWNER:
        raise AccessDenied(f"{what} is restricted to the contract owner")
    raise AccessDenied(f"{what} is restricted to the owner or a fund manager")
