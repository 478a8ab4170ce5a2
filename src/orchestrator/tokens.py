"""Token metadata — symbols, decimals, balances.  Every read is best-effort."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from decimal import Decimal

import structlog

from src.chain.base import TokenGateway
from src.chain.models import is_native, short_address
from src.core.config import NATIVE_ADDRESS
from src.core.errors import ChainError, ConfigError
from src.orchestrator.models import TokenRef
from src.orchestrator.units import DEFAULT_DECIMALS, to_decimal

logger = structlog.get_logger(__name__)


class TokenResolver:
    """Maps token addresses to :class:`TokenRef` for one session.

    Symbols come from the injected table first, then a live ``symbol()``
    read, then a truncated address.  Decimals are read once and cached;
    an unreadable ``decimals()`` degrades to 18 with a warning.  No failure
    here ever aborts the caller.
    """

    def __init__(
        self,
        gateway: TokenGateway,
        symbols: Mapping[str, str] | None = None,
        *,
        native_symbol: str = "ETH",
    ) -> None:
        self._gateway = gateway
        self._symbols = {addr.lower(): sym for addr, sym in (symbols or {}).items()}
        self._native_symbol = native_symbol
        self._decimals: dict[str, int] = {}

    @property
    def gateway(self) -> TokenGateway:
        return self._gateway

    async def resolve_symbol(self, address: str) -> str:
        known = self._symbols.get(address.lower())
        if known:
            return known
        if is_native(address):
            return self._native_symbol
        try:
            symbol = await self._gateway.symbol(address)
        except ChainError as exc:
            logger.debug("symbol_read_failed", token=address, error=str(exc))
            return short_address(address)
        return symbol or short_address(address)

    async def get_decimals(self, address: str) -> int:
        if is_native(address):
            return DEFAULT_DECIMALS
        key = address.lower()
        if key in self._decimals:
            return self._decimals[key]
        try:
            decimals = await self._gateway.decimals(address)
        except ChainError as exc:
            logger.warning(
                "decimals_fallback",
                token=address,
                fallback=DEFAULT_DECIMALS,
                error=str(exc),
            )
            # not cached: a later read may succeed
            return DEFAULT_DECIMALS
        self._decimals[key] = decimals
        return decimals

    async def resolve(self, address: str) -> TokenRef:
        symbol, decimals = await asyncio.gather(
            self.resolve_symbol(address), self.get_decimals(address)
        )
        return TokenRef(address=address, symbol=symbol, decimals=decimals)

    async def resolve_many(self, addresses: list[str]) -> list[TokenRef]:
        """Resolve concurrently, preserving order."""
        return list(await asyncio.gather(*(self.resolve(a) for a in addresses)))

    async def get_balance(self, address: str, owner: str) -> Decimal:
        """Human balance; zero (with a warning) if the read fails."""
        token = await self.resolve(address)
        try:
            native = await self._gateway.balance_of(address, owner)
        except ChainError as exc:
            logger.warning("balance_read_failed", token=address, owner=owner, error=str(exc))
            return Decimal(0)
        return to_decimal(token, native)

    def address_for(self, token: str) -> str:
        """Accept an address as-is, or look a symbol up in the table."""
        if token.startswith("0x"):
            return token
        wanted = token.strip().lower()
        if wanted == self._native_symbol.lower():
            return NATIVE_ADDRESS
        for address, symbol in self._symbols.items():
            if symbol.lower() == wanted:
                return address
        raise ConfigError(f"Unknown token {token!r}; add its address under [tokens.symbols]")
