"""Mint/redeem strategy selection — which entry point funds the request.

Mint strategies, in the order they are tried for a single-token mint:

    SINGLE_TOKEN_DIRECT    ledger.mintFromSingle(token, amount, minShares)
        │  only a "function not available" failure falls through
        ▼
    SINGLE_TOKEN_VIA_SWAP  swap input → every component, then ExactBasket

An explicit share count goes straight to EXACT_BASKET with no fallback.
Redeem has a single path: redeemForBasket, or redeemForSingle when an
output token is named.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import BaseModel, ConfigDict

from src.chain.base import BundleLedger, QuoteOracle
from src.chain.models import Call, same_address
from src.core.errors import (
    AllowanceFailed,
    ChainError,
    InvalidAmount,
    InvalidBundle,
    QuoteUnavailable,
    StrategyUnsupported,
    SubmissionFailed,
)
from src.orchestrator.allowance import ensure_allowance
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.estimator import DEFAULT_SLIPPAGE_BPS
from src.orchestrator.models import (
    SHARE_DECIMALS,
    AmountQuantity,
    BundleSnapshot,
    ShareEstimate,
    StrategyDecision,
    SubmissionReceipt,
    TokenRef,
    TransactionPlan,
)
from src.orchestrator.swap import SwapBasketAssembler, SwapOutcome
from src.orchestrator.tokens import TokenResolver
from src.orchestrator.units import apply_bps_haircut, format_units, parse_units, to_human

logger = structlog.get_logger(__name__)


def _entry_point_missing(exc: SubmissionFailed) -> bool:
    """True only when the ledger call itself was not available.

    Sequential plans count only a failure at the terminal step.  Atomic
    batches report as a whole; approvals never lack their selector.
    """
    if not exc.unsupported or isinstance(exc, AllowanceFailed):
        return False
    return exc.atomic or exc.step_index == exc.total_steps - 1


class StrategyOutcome(BaseModel):
    """Which strategy ran and what it submitted."""

    model_config = ConfigDict(frozen=True)

    decision: StrategyDecision | None = None
    receipt: SubmissionReceipt
    shares: int = 0
    swaps: SwapOutcome | None = None
    fallback_reason: str = ""


class MintStrategySelector:
    """Builds and submits the plan for one mint or redeem of one bundle."""

    def __init__(
        self,
        ledger: BundleLedger,
        resolver: TokenResolver,
        submitter: BatchSubmitter,
        *,
        oracle: QuoteOracle | None = None,
        assembler: SwapBasketAssembler | None = None,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._submitter = submitter
        self._oracle = oracle
        self._assembler = assembler

    @property
    def owner(self) -> str:
        return self._submitter.wallet.account

    # ── plans ─────────────────────────────────────────────────────────

    async def plan_exact_basket(self, bundle: BundleSnapshot, shares: int) -> TransactionPlan:
        """Approvals for every short component, in component order, then the mint."""
        required = await self._ledger.get_required_amounts(shares)
        if len(required) != len(bundle.components):
            raise InvalidBundle(
                f"Bundle {bundle.symbol} returned {len(required)} required amounts "
                f"for {len(bundle.components)} components"
            )

        needed = [
            (comp.token, amount)
            for comp, amount in zip(bundle.components, required)
            if amount > 0
        ]
        approvals = await asyncio.gather(*(
            ensure_allowance(
                self._resolver.gateway,
                token,
                self.owner,
                bundle.address,
                amount,
                label=f"approve {token.symbol}",
            )
            for token, amount in needed
        ))

        calls: list[Call] = [a for a in approvals if a is not None]
        spends = tuple(token.address for token, _ in needed if not token.is_native)
        calls.append(self._ledger.mint_exact_basket(shares, spends))

        logger.info(
            "exact_basket_planned",
            bundle=bundle.symbol,
            shares=format_units(shares, SHARE_DECIMALS),
            approvals=len(calls) - 1,
            components=len(needed),
        )
        return TransactionPlan(calls=tuple(calls))

    async def plan_single_direct(
        self,
        bundle: BundleSnapshot,
        amount: AmountQuantity,
        estimate: ShareEstimate,
    ) -> TransactionPlan:
        token = amount.token
        approval = await ensure_allowance(
            self._resolver.gateway,
            token,
            self.owner,
            bundle.address,
            amount.native,
            label=f"approve {token.symbol}",
        )
        mint = self._ledger.mint_from_single(
            token.address,
            amount.native,
            estimate.min_shares,
            value=amount.native if token.is_native else 0,
        )
        calls = ([approval] if approval else []) + [mint]
        return TransactionPlan(calls=tuple(calls))

    async def plan_redeem(
        self,
        bundle: BundleSnapshot,
        shares: int,
        output: TokenRef | None = None,
        min_out: int | None = None,
        *,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> TransactionPlan:
        """One redeem call; ``min_out`` is derived from a quote when not given.

        Raises:
            InvalidAmount: more shares than the account holds.
            QuoteUnavailable: single-token redeem with no way to price it.
        """
        if bundle.user_share_balance is None:
            # unknown balance: the ledger enforces it
            logger.warning("share_balance_unknown", bundle=bundle.symbol)
        else:
            held = parse_units(bundle.user_share_balance, SHARE_DECIMALS)
            if shares > held:
                raise InvalidAmount(
                    f"Cannot redeem {format_units(shares, SHARE_DECIMALS)} {bundle.symbol}: "
                    f"account holds {format_units(held, SHARE_DECIMALS)}"
                )

        if output is None:
            return TransactionPlan(calls=(self._ledger.redeem_for_basket(shares),))

        if min_out is None:
            expected = await self._quote_redeem(bundle, shares, output)
            min_out = apply_bps_haircut(expected, slippage_bps)
            logger.info(
                "redeem_min_out_derived",
                bundle=bundle.symbol,
                output=output.symbol,
                expected=to_human(output, expected),
                min_out=to_human(output, min_out),
            )
        return TransactionPlan(
            calls=(self._ledger.redeem_for_single(shares, output.address, min_out),)
        )

    async def _quote_redeem(self, bundle: BundleSnapshot, shares: int, output: TokenRef) -> int:
        """Value of the redeemed basket in ``output`` units."""
        try:
            amounts = await self._ledger.get_redeem_amounts(shares)
        except ChainError as exc:
            raise QuoteUnavailable(f"Unable to read redeem amounts: {exc}") from exc

        async def one(token: TokenRef, amount: int) -> int:
            if amount == 0 or same_address(token.address, output.address):
                return amount
            if self._oracle is None:
                raise QuoteUnavailable(
                    f"No quote oracle to price {token.symbol} in {output.symbol}"
                )
            try:
                return await self._oracle.quote(amount, token.address, output.address)
            except ChainError as exc:
                raise QuoteUnavailable(
                    f"No quote for {token.symbol} → {output.symbol}: {exc}"
                ) from exc

        values = await asyncio.gather(*(
            one(comp.token, amount) for comp, amount in zip(bundle.components, amounts)
        ))
        total = sum(values)
        if total <= 0:
            raise QuoteUnavailable(f"Redeem of {bundle.symbol} quotes to zero {output.symbol}")
        return total

    # ── execution ─────────────────────────────────────────────────────

    async def mint_exact_basket(
        self,
        bundle: BundleSnapshot,
        shares: int,
        *,
        cancel: asyncio.Event | None = None,
    ) -> StrategyOutcome:
        plan = await self.plan_exact_basket(bundle, shares)
        receipt = await self._submitter.submit(plan, cancel=cancel)
        return StrategyOutcome(
            decision=StrategyDecision.EXACT_BASKET, receipt=receipt, shares=shares,
        )

    async def _mint_direct(
        self,
        bundle: BundleSnapshot,
        amount: AmountQuantity,
        estimate: ShareEstimate,
        cancel: asyncio.Event | None,
    ) -> StrategyOutcome:
        plan = await self.plan_single_direct(bundle, amount, estimate)
        try:
            receipt = await self._submitter.submit(plan, cancel=cancel)
        except SubmissionFailed as exc:
            if _entry_point_missing(exc):
                raise StrategyUnsupported(
                    f"{bundle.symbol} does not accept direct {amount.token.symbol} mints: {exc}"
                ) from exc
            raise
        return StrategyOutcome(
            decision=StrategyDecision.SINGLE_TOKEN_DIRECT,
            receipt=receipt,
            shares=estimate.min_shares,
        )

    async def _mint_via_swap(
        self,
        bundle: BundleSnapshot,
        amount: AmountQuantity,
        estimate: ShareEstimate,
        cancel: asyncio.Event | None,
    ) -> StrategyOutcome:
        if self._assembler is None:
            raise StrategyUnsupported("No swap router is configured")

        shares = estimate.min_shares
        required = await self._ledger.get_required_amounts(shares)
        legs = await self._assembler.plan_legs(bundle, required, amount)
        swaps = await self._assembler.execute(legs, amount.token, self.owner, cancel=cancel)

        # every swap settled; only now is the mint built
        plan = await self.plan_exact_basket(bundle, shares)
        receipt = await self._submitter.submit(plan, cancel=cancel)
        return StrategyOutcome(
            decision=StrategyDecision.SINGLE_TOKEN_VIA_SWAP,
            receipt=receipt,
            shares=shares,
            swaps=swaps,
        )

    async def mint_single(
        self,
        bundle: BundleSnapshot,
        amount: AmountQuantity,
        estimate: ShareEstimate,
        *,
        cancel: asyncio.Event | None = None,
    ) -> StrategyOutcome:
        """Direct first; ViaSwap only when Direct is not available at all.

        Amount, slippage, approval and revert failures from Direct propagate
        unchanged.
        """
        strat_log = logger.bind(bundle=bundle.symbol, token=amount.token.symbol)
        try:
            return await self._mint_direct(bundle, amount, estimate, cancel)
        except StrategyUnsupported as exc:
            strat_log.info("direct_mint_unsupported", error=str(exc))
            reason = str(exc)

        try:
            outcome = await self._mint_via_swap(bundle, amount, estimate, cancel)
        except StrategyUnsupported as exc:
            strat_log.warning("mint_strategies_exhausted", error=str(exc))
            raise StrategyUnsupported(
                f"No mint strategy is available for {amount.token.symbol} into "
                f"{bundle.symbol}: {exc}"
            ) from exc
        return outcome.model_copy(update={"fallback_reason": reason})

    async def redeem(
        self,
        bundle: BundleSnapshot,
        shares: int,
        output: TokenRef | None = None,
        min_out: int | None = None,
        *,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        cancel: asyncio.Event | None = None,
    ) -> StrategyOutcome:
        plan = await self.plan_redeem(
            bundle, shares, output, min_out, slippage_bps=slippage_bps,
        )
        receipt = await self._submitter.submit(plan, cancel=cancel)
        return StrategyOutcome(receipt=receipt, shares=shares)
