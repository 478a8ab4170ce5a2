"""Bundle snapshot — one fresh, concurrent read of everything a request needs."""

from __future__ import annotations

import asyncio

import structlog
from pydantic import ValidationError

from src.chain.base import BundleFactory, BundleLedger
from src.core.errors import InvalidBundle
from src.orchestrator.models import SHARE_DECIMALS, BundleSnapshot, ComponentSpec, TokenRef
from src.orchestrator.tokens import TokenResolver
from src.orchestrator.units import to_decimal

logger = structlog.get_logger(__name__)


async def fetch_snapshot(
    ledger: BundleLedger,
    resolver: TokenResolver,
    *,
    user: str | None = None,
) -> BundleSnapshot:
    """Read the bundle's header, components and (optionally) the user's shares.

    Independent reads are issued together.  Component balances and the user
    balance are informational: if they fail the snapshot still builds, with
    no balances and an unknown (``None``) user balance.  Header reads (NAV,
    creation unit, components) are required and propagate their ChainError.

    Raises:
        InvalidBundle: no components, or weights not summing to 10000 bps.
    """
    name, symbol, total_supply, nav, creator, creation_unit, raw_components = (
        await asyncio.gather(
            ledger.name(),
            ledger.symbol(),
            ledger.total_supply(),
            ledger.nav(),
            ledger.creator(),
            ledger.creation_unit(),
            ledger.get_components(),
        )
    )

    tokens, balances, user_shares = await asyncio.gather(
        resolver.resolve_many([addr for addr, _ in raw_components]),
        ledger.get_component_balances(),
        ledger.balance_of(user) if user else _zero(),
        return_exceptions=True,
    )
    if isinstance(tokens, BaseException):
        raise tokens
    if isinstance(balances, BaseException):
        logger.warning("component_balances_failed", bundle=ledger.address, error=str(balances))
        balances = []
    if isinstance(user_shares, BaseException):
        logger.warning("user_balance_failed", bundle=ledger.address, error=str(user_shares))
        user_shares = None

    share = TokenRef(address=ledger.address, symbol=symbol, decimals=SHARE_DECIMALS)
    components = tuple(
        ComponentSpec(token=token, weight_bps=weight)
        for token, (_, weight) in zip(tokens, raw_components)
    )
    component_balances = tuple(
        to_decimal(token, bal) for token, bal in zip(tokens, balances)
    )

    try:
        snapshot = BundleSnapshot(
            address=ledger.address,
            name=name,
            symbol=symbol,
            creator=creator,
            total_supply=to_decimal(share, total_supply),
            nav=to_decimal(share, nav),
            nav_native=nav,
            creation_unit=creation_unit,
            components=components,
            component_balances=component_balances,
            user_share_balance=(
                None if user_shares is None else to_decimal(share, user_shares)
            ),
        )
    except ValidationError as exc:
        raise InvalidBundle(f"Bundle {ledger.address} is not usable: {exc}") from exc

    logger.info(
        "snapshot_fetched",
        bundle=ledger.address,
        nav=str(snapshot.nav),
        components=len(components),
        creation_unit=creation_unit,
    )
    return snapshot


async def _zero() -> int:
    return 0


async def list_bundles(factory: BundleFactory, *, creator: str | None = None) -> list[str]:
    """All bundle addresses from the factory, or those of one creator."""
    if creator:
        return await factory.get_creator_bundles(creator)
    return await factory.get_all_bundles()
