"""Orchestrate — the request-level entry point for mint and redeem.

Every action reads a fresh snapshot, picks a strategy, submits, and
returns an :class:`ActionResult`.  Failures come back inside the result as
an :class:`ActionFailure`; nothing escapes as a bare exception.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from src.chain.base import BundleFactory, BundleLedger, QuoteOracle, SigningAgent
from src.chain.client import ChainClient
from src.core.config import OrchestratorConfig, Settings
from src.core.errors import BelowMinimumInvestment, BundleError, ConfigError
from src.core.logging import bind_request_context, clear_request_context
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.estimator import estimate_shares
from src.orchestrator.models import (
    SHARE_DECIMALS,
    ActionFailure,
    ActionResult,
    AmountQuantity,
    BundleSnapshot,
    MintRequest,
    RedeemRequest,
    ShareEstimate,
    StrategyDecision,
    TokenRef,
)
from src.orchestrator.snapshot import fetch_snapshot, list_bundles
from src.orchestrator.strategy import MintStrategySelector, StrategyOutcome
from src.orchestrator.swap import SwapBasketAssembler
from src.orchestrator.tokens import TokenResolver
from src.orchestrator.units import (
    format_units,
    quantity,
    quantity_from_native,
    require_positive,
    to_native,
)

logger = structlog.get_logger(__name__)


class BundleOrchestrator:
    """Mint, redeem and preview against any bundle the ledger factory knows.

    Holds no per-request state: each call builds its own snapshot, plan and
    selector.  The only thing shared across calls is the signing agent's
    cached atomic-batch capability and the resolver's decimals cache.
    """

    def __init__(
        self,
        *,
        ledgers: Callable[[str], BundleLedger],
        resolver: TokenResolver,
        wallet: SigningAgent,
        pricing_token: str,
        oracle: QuoteOracle | None = None,
        factory: BundleFactory | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._ledgers = ledgers
        self._resolver = resolver
        self._wallet = wallet
        self._pricing_token = pricing_token
        self._oracle = oracle
        self._factory = factory
        self._cfg = config or OrchestratorConfig()
        self._submitter = BatchSubmitter(wallet)

    @classmethod
    def from_client(
        cls,
        client: ChainClient,
        settings: Settings,
        wallet: SigningAgent,
    ) -> "BundleOrchestrator":
        """Wire every collaborator from one connected :class:`ChainClient`."""
        chain = settings.chain
        return cls(
            ledgers=client.bundle,
            resolver=TokenResolver(
                client.tokens(),
                settings.tokens.symbols,
                native_symbol=chain.native_symbol,
            ),
            wallet=wallet,
            pricing_token=chain.pricing_token,
            oracle=client.oracle(),
            factory=client.factory(),
            config=settings.orchestrator,
        )

    @property
    def resolver(self) -> TokenResolver:
        return self._resolver

    def _selector(self, ledger: BundleLedger) -> MintStrategySelector:
        assembler = None
        if self._oracle is not None:
            assembler = SwapBasketAssembler(
                self._oracle,
                self._resolver.gateway,
                self._submitter,
                swap_slippage_bps=self._cfg.swap_slippage_bps,
            )
        return MintStrategySelector(
            ledger,
            self._resolver,
            self._submitter,
            oracle=self._oracle,
            assembler=assembler,
        )

    async def _resolve_token(self, token: str) -> TokenRef:
        return await self._resolver.resolve(self._resolver.address_for(token))

    # ── reads ─────────────────────────────────────────────────────────

    async def list_bundles(self, *, creator: str | None = None) -> list[str]:
        if self._factory is None:
            raise ConfigError("No bundle factory is configured")
        return await list_bundles(self._factory, creator=creator)

    async def get_bundle(self, address: str, *, user: str | None = None) -> BundleSnapshot:
        """Full view of one bundle; ``user`` defaults to the signing account."""
        return await fetch_snapshot(
            self._ledgers(address), self._resolver, user=user or self._wallet.account,
        )

    async def preview_mint(
        self,
        bundle: str,
        input_token: str,
        input_amount: str,
        *,
        slippage_bps: int | None = None,
    ) -> ShareEstimate:
        snapshot = await fetch_snapshot(self._ledgers(bundle), self._resolver)
        token = await self._resolve_token(input_token)
        amount = require_positive(quantity(token, input_amount))
        return await self._estimate(snapshot, amount, slippage_bps)

    async def preview_exact_basket(self, bundle: str, shares: str) -> list[AmountQuantity]:
        """Component amounts an exact-basket mint of ``shares`` would pull."""
        ledger = self._ledgers(bundle)
        snapshot = await fetch_snapshot(ledger, self._resolver)
        native = require_positive(quantity(snapshot.share_token, shares)).native
        amounts = await ledger.get_required_amounts(native)
        return [
            quantity_from_native(comp.token, amount)
            for comp, amount in zip(snapshot.components, amounts)
        ]

    async def preview_redeem(self, bundle: str, shares: str) -> list[AmountQuantity]:
        """Component amounts a basket redemption of ``shares`` would return."""
        ledger = self._ledgers(bundle)
        snapshot = await fetch_snapshot(ledger, self._resolver)
        native = require_positive(quantity(snapshot.share_token, shares)).native
        amounts = await ledger.get_redeem_amounts(native)
        return [
            quantity_from_native(comp.token, amount)
            for comp, amount in zip(snapshot.components, amounts)
        ]

    async def _estimate(
        self,
        snapshot: BundleSnapshot,
        amount: AmountQuantity,
        slippage_bps: int | None,
    ) -> ShareEstimate:
        pricing = await self._resolver.resolve(self._pricing_token)
        return await estimate_shares(
            snapshot,
            amount,
            pricing_token=pricing,
            oracle=self._oracle,
            slippage_bps=self._cfg.slippage_bps if slippage_bps is None else slippage_bps,
        )

    # ── actions ───────────────────────────────────────────────────────

    async def mint(
        self,
        request: MintRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ActionResult:
        """Mint shares of ``request.bundle``.

        Steps:
            1. Fresh snapshot (NAV, creation unit, components, user balance).
            2. Exact basket: validate the share count against the creation
               unit.  Single token: estimate shares and minimum shares.
            3. Strategy selector builds and submits the plan (Direct, then
               ViaSwap on "function not available" only).
            4. Assemble the result.
        """
        t0 = time.monotonic()
        request_id = bind_request_context(action="mint", bundle=request.bundle)
        mint_log = logger.bind(exact_basket=request.is_exact_basket)
        mint_log.info("mint_start")
        estimate: ShareEstimate | None = None

        try:
            ledger = self._ledgers(request.bundle)
            snapshot = await fetch_snapshot(ledger, self._resolver, user=self._wallet.account)
            selector = self._selector(ledger)

            if request.is_exact_basket:
                shares = require_positive(quantity(snapshot.share_token, request.shares)).native
                if shares < snapshot.creation_unit:
                    minimum = format_units(snapshot.creation_unit, SHARE_DECIMALS)
                    raise BelowMinimumInvestment(
                        f"Amount too small. Minimum {minimum} {snapshot.symbol} shares "
                        f"per mint (creation unit).",
                        min_input=minimum,
                        token_symbol=snapshot.symbol,
                    )
                outcome = await selector.mint_exact_basket(snapshot, shares, cancel=cancel)
            else:
                token = await self._resolve_token(request.input_token)
                amount = require_positive(quantity(token, request.input_amount))
                estimate = await self._estimate(snapshot, amount, request.slippage_bps)
                outcome = await selector.mint_single(snapshot, amount, estimate, cancel=cancel)

        except BundleError as exc:
            return self._failed("mint", request.bundle, request_id, t0, exc, estimate=estimate)
        except Exception as exc:
            mint_log.exception("mint_unexpected_error")
            return self._failed("mint", request.bundle, request_id, t0, exc, estimate=estimate)
        finally:
            clear_request_context()

        return self._succeeded("mint", snapshot, request_id, t0, outcome, estimate=estimate)

    async def redeem(
        self,
        request: RedeemRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ActionResult:
        t0 = time.monotonic()
        request_id = bind_request_context(action="redeem", bundle=request.bundle)
        logger.info("redeem_start", output=request.output_token)

        try:
            ledger = self._ledgers(request.bundle)
            snapshot = await fetch_snapshot(ledger, self._resolver, user=self._wallet.account)
            shares = require_positive(quantity(snapshot.share_token, request.shares)).native

            output: TokenRef | None = None
            min_out: int | None = None
            if request.output_token is not None:
                output = await self._resolve_token(request.output_token)
                if request.min_out is not None:
                    min_out = to_native(output, request.min_out)

            outcome = await self._selector(ledger).redeem(
                snapshot,
                shares,
                output,
                min_out,
                slippage_bps=(
                    self._cfg.slippage_bps if request.slippage_bps is None
                    else request.slippage_bps
                ),
                cancel=cancel,
            )

        except BundleError as exc:
            return self._failed("redeem", request.bundle, request_id, t0, exc)
        except Exception as exc:
            logger.exception("redeem_unexpected_error")
            return self._failed("redeem", request.bundle, request_id, t0, exc)
        finally:
            clear_request_context()

        return self._succeeded("redeem", snapshot, request_id, t0, outcome)

    # ── result assembly ───────────────────────────────────────────────

    def _succeeded(
        self,
        action: str,
        snapshot: BundleSnapshot,
        request_id: str,
        t0: float,
        outcome: StrategyOutcome,
        *,
        estimate: ShareEstimate | None = None,
    ) -> ActionResult:
        elapsed_ms = round((time.monotonic() - t0) * 1000, 2)
        receipt = outcome.receipt
        shares = format_units(outcome.shares, SHARE_DECIMALS)

        explain_parts = [
            f"{action.capitalize()} {shares} {snapshot.symbol}"
            + (f" via {outcome.decision.value}." if outcome.decision else "."),
            f"Submitted {receipt.calls_submitted} call(s) "
            + ("as one atomic batch." if receipt.atomic else "sequentially."),
        ]
        if outcome.decision == StrategyDecision.SINGLE_TOKEN_VIA_SWAP and outcome.swaps:
            swapped = sum(1 for leg in outcome.swaps.legs if leg.needs_swap)
            explain_parts.append(f"Swapped into {swapped} component(s) first.")
        if outcome.fallback_reason:
            explain_parts.append(f"Direct mint unavailable: {outcome.fallback_reason}")
        if estimate is not None and estimate.approximate:
            explain_parts.append("Estimate is approximate (quote oracle unavailable).")

        logger.info(
            f"{action}_complete",
            request_id=request_id,
            bundle=snapshot.address,
            decision=outcome.decision.value if outcome.decision else None,
            tx_id=receipt.tx_id,
            elapsed_ms=elapsed_ms,
        )
        return ActionResult(
            ok=True,
            request_id=request_id,
            action=action,
            bundle=snapshot.address,
            decision=outcome.decision,
            receipt=receipt,
            estimate=estimate,
            elapsed_ms=elapsed_ms,
            explain=" ".join(explain_parts),
        )

    def _failed(
        self,
        action: str,
        bundle: str,
        request_id: str,
        t0: float,
        exc: Exception,
        *,
        estimate: ShareEstimate | None = None,
    ) -> ActionResult:
        elapsed_ms = round((time.monotonic() - t0) * 1000, 2)
        failure = ActionFailure.from_exception(exc)
        logger.warning(
            f"{action}_failed",
            request_id=request_id,
            bundle=bundle,
            error_type=failure.error_type,
            error=failure.message,
            step_index=failure.step_index,
        )
        return ActionResult(
            ok=False,
            request_id=request_id,
            action=action,
            bundle=bundle,
            estimate=estimate,
            error=failure,
            elapsed_ms=elapsed_ms,
            explain=failure.message,
        )
