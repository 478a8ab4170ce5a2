"""Share estimation — input amount → expected and minimum-acceptable shares."""

from __future__ import annotations

import structlog

from src.chain.base import QuoteOracle
from src.chain.models import same_address
from src.core.errors import BelowMinimumInvestment, ChainError, EstimateUnavailable
from src.orchestrator.models import (
    SHARE_DECIMALS,
    AmountQuantity,
    BundleSnapshot,
    ShareEstimate,
    TokenRef,
)
from src.orchestrator.units import (
    apply_bps_haircut,
    ceil_div,
    format_units,
    scale_native,
    to_human,
)

logger = structlog.get_logger(__name__)

DEFAULT_SLIPPAGE_BPS = 200
_ONE = 10**SHARE_DECIMALS


async def price_input(
    amount: AmountQuantity,
    pricing_token: TokenRef,
    oracle: QuoteOracle | None,
) -> tuple[int, bool]:
    """Value of ``amount`` in the pricing unit, 18-decimal fixed point.

    Returns ``(value, approximate)``.  When the oracle is missing, fails,
    or quotes zero, the input is valued at par with the pricing unit and
    flagged approximate.
    """
    token = amount.token
    if same_address(token.address, pricing_token.address):
        return scale_native(amount.native, token.decimals, SHARE_DECIMALS), False

    priced: int | None = None
    if oracle is not None:
        try:
            priced = await oracle.quote(amount.native, token.address, pricing_token.address)
        except ChainError as exc:
            logger.warning(
                "quote_unavailable",
                token_in=token.symbol,
                token_out=pricing_token.symbol,
                error=str(exc),
            )
        else:
            if priced <= 0:
                logger.warning("quote_empty", token_in=token.symbol, token_out=pricing_token.symbol)
                priced = None

    if priced is None:
        # NAV-only: treat the input at par with the pricing unit
        return scale_native(amount.native, token.decimals, SHARE_DECIMALS), True
    return scale_native(priced, pricing_token.decimals, SHARE_DECIMALS), False


def _min_input_native(bundle: BundleSnapshot, amount: AmountQuantity, value: int) -> int:
    """Smallest input that clears the creation unit, inverting value → shares."""
    min_value = ceil_div(bundle.creation_unit * bundle.nav_native, _ONE)
    if value > 0 and amount.native > 0:
        return ceil_div(min_value * amount.native, value)
    return scale_native(min_value, SHARE_DECIMALS, amount.token.decimals, round_up=True)


async def estimate_shares(
    bundle: BundleSnapshot,
    amount: AmountQuantity,
    *,
    pricing_token: TokenRef,
    oracle: QuoteOracle | None = None,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
) -> ShareEstimate:
    """Estimate the shares a single-token mint of ``amount`` would create.

    Steps:
    1. Value the input in the pricing unit (oracle quote, identity for the
       pricing token itself, NAV-only par fallback when the oracle is down).
    2. ``shares = value × 10^18 // nav`` in integers.
    3. Reject anything below the creation unit, naming the minimum input.
    4. ``min_shares`` = shares less the slippage buffer, never below the
       creation unit (the ledger would refuse such a mint anyway).

    Raises:
        EstimateUnavailable: NAV is zero or unreadable.
        BelowMinimumInvestment: estimated shares < creation unit.
    """
    if bundle.nav_native <= 0:
        raise EstimateUnavailable(
            f"Unable to estimate shares: bundle {bundle.symbol} reports no NAV"
        )

    value, approximate = await price_input(amount, pricing_token, oracle)
    shares = value * _ONE // bundle.nav_native

    est_log = logger.bind(
        bundle=bundle.address,
        token=amount.token.symbol,
        amount=amount.human,
        approximate=approximate,
    )

    if shares < bundle.creation_unit:
        min_input = to_human(amount.token, _min_input_native(bundle, amount, value))
        est_log.info(
            "below_creation_unit",
            shares=shares,
            creation_unit=bundle.creation_unit,
            min_input=min_input,
        )
        raise BelowMinimumInvestment(
            f"Amount too small. Minimum {min_input} {amount.token.symbol} needed "
            f"(creation unit is {format_units(bundle.creation_unit, SHARE_DECIMALS)} shares).",
            min_input=min_input,
            token_symbol=amount.token.symbol,
        )

    min_shares = max(apply_bps_haircut(shares, slippage_bps), bundle.creation_unit)
    est_log.info("shares_estimated", expected=shares, minimum=min_shares)

    return ShareEstimate(
        input=amount,
        input_value=value,
        expected_shares=shares,
        min_shares=min_shares,
        expected_human=format_units(shares, SHARE_DECIMALS),
        min_human=format_units(min_shares, SHARE_DECIMALS),
        slippage_bps=slippage_bps,
        approximate=approximate,
    )
