"""Swap-and-basket assembly — turn one input token into every component.

The assembler only acquires the basket.  Minting it is the caller's job
(an ExactBasket plan), and only after every swap here has settled.
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.chain.base import QuoteOracle, TokenGateway
from src.chain.models import same_address
from src.core.errors import (
    BundleError,
    ChainError,
    QuoteUnavailable,
    SubmissionFailed,
    SwapFailed,
)
from src.orchestrator.allowance import ensure_allowance
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.models import (
    AmountQuantity,
    BundleSnapshot,
    SubmissionReceipt,
    TokenRef,
    TransactionPlan,
)
from src.orchestrator.units import apply_bps_haircut, to_human

logger = structlog.get_logger(__name__)

DEFAULT_SWAP_SLIPPAGE_BPS = 100


class SwapLeg(BaseModel):
    """One component's slice of the input and the swap that buys it."""

    model_config = ConfigDict(frozen=True)

    component: TokenRef
    required: int = Field(ge=0, description="Component amount the mint will pull")
    amount_in: int = Field(ge=0, description="Input-token amount allotted")
    quoted_out: int = Field(ge=0)
    min_out: int = Field(ge=0)
    needs_swap: bool = True


class SwapOutcome(BaseModel):
    """Settled swaps for one request."""

    model_config = ConfigDict(frozen=True)

    legs: tuple[SwapLeg, ...]
    receipts: tuple[SubmissionReceipt, ...] = ()


def split_input(total: int, weights: list[int]) -> list[int]:
    """Split ``total`` in proportion to ``weights``.

    Floors every share and gives the rounding remainder to the last nonzero
    weight, so the parts always sum to ``total``.
    """
    weight_sum = sum(weights)
    if weight_sum <= 0:
        return [0] * len(weights)
    parts = [total * w // weight_sum for w in weights]
    last = max(i for i, w in enumerate(weights) if w > 0)
    parts[last] += total - sum(parts)
    return parts


class SwapBasketAssembler:
    """Quotes, plans and executes the component swaps for a ViaSwap mint."""

    def __init__(
        self,
        oracle: QuoteOracle,
        gateway: TokenGateway,
        submitter: BatchSubmitter,
        *,
        swap_slippage_bps: int = DEFAULT_SWAP_SLIPPAGE_BPS,
    ) -> None:
        self._oracle = oracle
        self._gateway = gateway
        self._submitter = submitter
        self._swap_slippage_bps = swap_slippage_bps

    async def _quote(self, amount: int, token_in: TokenRef, token_out: TokenRef) -> int:
        if amount == 0 or same_address(token_in.address, token_out.address):
            return amount
        try:
            quoted = await self._oracle.quote(amount, token_in.address, token_out.address)
        except ChainError as exc:
            raise QuoteUnavailable(
                f"No quote for {token_in.symbol} → {token_out.symbol}: {exc}"
            ) from exc
        if quoted <= 0:
            raise QuoteUnavailable(f"Empty quote for {token_in.symbol} → {token_out.symbol}")
        return quoted

    async def plan_legs(
        self,
        bundle: BundleSnapshot,
        ledger_required: list[int],
        amount: AmountQuantity,
    ) -> list[SwapLeg]:
        """Allot the input across components and quote every swap up front.

        Raises:
            QuoteUnavailable: a valuation or swap quote could not be had.
            SwapFailed: a quote would not cover the component's requirement.
        """
        input_token = amount.token
        components = [c.token for c in bundle.components]

        # value of each component's requirement, in input-token units
        values = await asyncio.gather(*(
            self._quote(req, comp, input_token)
            for comp, req in zip(components, ledger_required)
        ))
        allotments = split_input(amount.native, list(values))

        quotes = await asyncio.gather(*(
            self._quote(alloc, input_token, comp)
            for comp, alloc in zip(components, allotments)
        ))

        legs: list[SwapLeg] = []
        short: list[str] = []
        for comp, req, alloc, quoted in zip(components, ledger_required, allotments, quotes):
            if req == 0:
                continue
            needs_swap = not same_address(comp.address, input_token.address)
            min_out = max(req, apply_bps_haircut(quoted, self._swap_slippage_bps))
            if quoted < req:
                short.append(comp.symbol)
                logger.warning(
                    "swap_quote_short",
                    component=comp.symbol,
                    required=to_human(comp, req),
                    quoted=to_human(comp, quoted),
                )
            legs.append(SwapLeg(
                component=comp,
                required=req,
                amount_in=alloc,
                quoted_out=quoted,
                min_out=min_out,
                needs_swap=needs_swap,
            ))

        if short:
            raise SwapFailed(
                f"{amount.human} {input_token.symbol} does not cover the basket: "
                f"quotes fall short for {', '.join(short)}; nothing was swapped",
                failed=tuple(short),
            )
        return legs

    async def execute(
        self,
        legs: list[SwapLeg],
        input_token: TokenRef,
        owner: str,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SwapOutcome:
        """Send the router approval and every swap; return once all settled.

        Atomic wallets get approval + swaps as one plan.  Otherwise the
        approval confirms first and the swaps run concurrently behind a
        join barrier.  Any failed swap raises :class:`SwapFailed`.
        """
        swapping = [leg for leg in legs if leg.needs_swap]
        if not swapping:
            return SwapOutcome(legs=tuple(legs))

        total_in = sum(leg.amount_in for leg in swapping)
        approval = await ensure_allowance(
            self._gateway,
            input_token,
            owner,
            self._oracle.spender,
            total_in,
            label=f"approve {input_token.symbol} for router",
        )
        swaps = [
            self._oracle.swap(
                leg.amount_in,
                leg.min_out,
                input_token.address,
                leg.component.address,
                owner,
                label=f"swap {input_token.symbol} → {leg.component.symbol}",
            )
            for leg in swapping
        ]
        symbols = tuple(leg.component.symbol for leg in swapping)
        swap_log = logger.bind(input=input_token.symbol, swaps=len(swaps))

        if await self._submitter.wallet.supports_atomic_batch():
            plan = TransactionPlan(calls=tuple(([approval] if approval else []) + swaps))
            try:
                receipt = await self._submitter.submit(plan, cancel=cancel)
            except SubmissionFailed as exc:
                swap_log.warning("swaps_failed", atomic=True, error=str(exc))
                raise SwapFailed(
                    f"Swap batch into {', '.join(symbols)} failed; nothing was minted: {exc}",
                    failed=symbols,
                ) from exc
            swap_log.info("swaps_settled", atomic=True, tx_id=receipt.tx_id)
            return SwapOutcome(legs=tuple(legs), receipts=(receipt,))

        if approval is not None:
            await self._submitter.submit(TransactionPlan(calls=(approval,)), cancel=cancel)

        results = await asyncio.gather(
            *(self._submitter.submit(TransactionPlan(calls=(s,)), cancel=cancel) for s in swaps),
            return_exceptions=True,
        )

        failed: list[str] = []
        succeeded: list[str] = []
        receipts: list[SubmissionReceipt] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, BundleError):
                failed.append(symbol)
                swap_log.warning("swap_failed", component=symbol, error=str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                succeeded.append(symbol)
                receipts.append(result)

        if failed:
            raise SwapFailed(
                f"Swap into {', '.join(failed)} failed ({len(succeeded)} of {len(swaps)} "
                f"swaps settled); nothing was minted",
                failed=tuple(failed),
                succeeded=tuple(succeeded),
            )

        swap_log.info("swaps_settled", atomic=False, swaps=len(receipts))
        return SwapOutcome(legs=tuple(legs), receipts=tuple(receipts))
