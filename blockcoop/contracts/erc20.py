"""Minimal ERC-20 token hooks."""
from __future__ import annotations

from .base import Contract

BALANCE_OF = "function balanceOf(address _owner) view returns (uint256)"
SYMBOL = "function symbol() view returns (string)"
DECIMALS = "function decimals() view returns (uint8)"
ALLOWANCE = "function allowance(address owner, address spender) view returns (uint256)"
APPROVE = "function approve(address spender, uint256 amount) returns (bool)"


class Erc20Token(Contract):
    async def balance_of(self, owner: str) -> int:
        return await self.read(BALANCE_OF, owner)

    async def symbol(self) -> str:
        return await self.read(SYMBOL)

    async def decimals(self) -> int:
        return await self.read(DECIMALS)

    async def allowance(self, owner: str, spender: str) -> int:
        return await self.read(ALLOWANCE, owner, spender)

    async def approve(self, spender: str, amount: int) -> str:
        return await self.write(APPROVE, spender, amount)
