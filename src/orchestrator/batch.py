"""Batch submission — one atomic unit when the wallet can, step by step otherwise."""

from __future__ import annotations

import asyncio

import structlog

from src.chain.base import SigningAgent
from src.chain.models import Call, CallKind
from src.core.errors import (
    AllowanceFailed,
    ChainError,
    ChainRevertError,
    ChainUnsupportedError,
    SubmissionCancelled,
    SubmissionFailed,
    WalletCapabilityError,
)
from src.orchestrator.models import SubmissionReceipt, TransactionPlan

logger = structlog.get_logger(__name__)


class BatchSubmitter:
    """Submits a :class:`TransactionPlan` through one signing agent.

    Atomic mode hands the whole plan to ``send_calls`` and reports success
    or failure for the plan as a whole.  Sequential mode sends each call,
    waits for its receipt, and only then sends the next; the first failure
    stops the run and says which step broke and how many approvals had
    already confirmed.  A wallet that rejects batching itself is dropped
    to sequential mode for good.
    """

    def __init__(self, wallet: SigningAgent) -> None:
        self._wallet = wallet

    @property
    def wallet(self) -> SigningAgent:
        return self._wallet

    async def submit(
        self,
        plan: TransactionPlan,
        *,
        cancel: asyncio.Event | None = None,
    ) -> SubmissionReceipt:
        if not plan.calls:
            raise SubmissionFailed("Nothing to submit: the plan is empty")
        if cancel is not None and cancel.is_set():
            raise SubmissionCancelled(
                "Cancelled before submission",
                step_index=0,
                total_steps=len(plan),
            )

        if await self._wallet.supports_atomic_batch():
            try:
                return await self._submit_atomic(plan)
            except WalletCapabilityError as exc:
                # rejected by the wallet before anything was sent
                logger.warning("atomic_batch_unavailable", error=str(exc))
                self._wallet.disable_atomic_batch()
        return await self._submit_sequential(plan, cancel)

    # ── atomic ────────────────────────────────────────────────────────

    async def _submit_atomic(self, plan: TransactionPlan) -> SubmissionReceipt:
        total = len(plan)
        sub_log = logger.bind(mode="atomic", total_steps=total)
        sub_log.info("submission_start", labels=[c.label for c in plan.calls])

        try:
            # never interrupt a batch the wallet has already accepted
            tx_id = await asyncio.shield(self._wallet.send_calls(list(plan.calls)))
        except WalletCapabilityError:
            raise
        except ChainError as exc:
            unsupported = isinstance(exc, ChainUnsupportedError)
            sub_log.warning("batch_failed", error=str(exc), unsupported=unsupported)
            raise SubmissionFailed(
                f"Atomic batch of {total} calls was rejected; nothing was committed: {exc}",
                total_steps=total,
                atomic=True,
                unsupported=unsupported,
            ) from exc

        sub_log.info("submission_complete", tx_id=tx_id)
        return SubmissionReceipt(
            tx_id=tx_id, tx_ids=(tx_id,), atomic=True, calls_submitted=total,
        )

    # ── sequential ────────────────────────────────────────────────────

    async def _run_step(self, call: Call) -> str:
        tx_hash = await self._wallet.send_transaction(call)
        await self._wallet.wait_for_receipt(tx_hash)
        return tx_hash

    async def _submit_sequential(
        self,
        plan: TransactionPlan,
        cancel: asyncio.Event | None,
    ) -> SubmissionReceipt:
        total = len(plan)
        approvals_total = len(plan.approvals)
        sub_log = logger.bind(mode="sequential", total_steps=total)
        sub_log.info("submission_start", labels=[c.label for c in plan.calls])

        tx_ids: list[str] = []
        approvals_done = 0

        for index, call in enumerate(plan.calls):
            if cancel is not None and cancel.is_set():
                sub_log.info("submission_cancelled", step=index + 1, approvals=approvals_done)
                raise SubmissionCancelled(
                    f"Cancelled before step {index + 1}/{total} ({call.label}); "
                    f"{approvals_done} of {approvals_total} approvals already confirmed",
                    step_index=index,
                    total_steps=total,
                    approvals_succeeded=approvals_done,
                )

            try:
                tx_hash = await asyncio.shield(self._run_step(call))
            except ChainError as exc:
                unsupported = isinstance(exc, ChainUnsupportedError)
                verb = "reverted" if isinstance(exc, ChainRevertError) else "failed"
                message = (
                    f"{approvals_done} of {approvals_total} approvals succeeded; "
                    f"step {index + 1}/{total} ({call.label}) {verb}: {exc}"
                )
                sub_log.warning(
                    "step_failed",
                    step=index + 1,
                    label=call.label,
                    error=str(exc),
                    unsupported=unsupported,
                )
                error_cls = AllowanceFailed if call.kind == CallKind.APPROVE else SubmissionFailed
                raise error_cls(
                    message,
                    step_index=index,
                    total_steps=total,
                    approvals_succeeded=approvals_done,
                    unsupported=unsupported,
                ) from exc

            tx_ids.append(tx_hash)
            if call.kind == CallKind.APPROVE:
                approvals_done += 1
            sub_log.info("step_confirmed", step=index + 1, label=call.label, tx_hash=tx_hash)

        sub_log.info("submission_complete", tx_id=tx_ids[-1])
        return SubmissionReceipt(
            tx_id=tx_ids[-1], tx_ids=tuple(tx_ids), atomic=False, calls_submitted=total,
        )
