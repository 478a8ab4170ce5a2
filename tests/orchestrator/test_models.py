"""Tests for orchestrator data models."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from src.chain.models import Call, CallKind
from src.core.errors import (
    BelowMinimumInvestment,
    SubmissionFailed,
    SwapFailed,
)
from src.orchestrator.models import (
    ActionFailure,
    BundleSnapshot,
    ComponentSpec,
    MintRequest,
    RedeemRequest,
    TransactionPlan,
)
from tests.conftest import BUNDLE, TOKEN_A, TOKEN_B, token_ref


def _approve(token: str) -> Call:
    return Call(
        target=token, data="0x", kind=CallKind.APPROVE, label=f"approve {token[-1]}",
        token=token, spender=BUNDLE, amount=1,
    )


def _mint(*spends: str) -> Call:
    return Call(target=BUNDLE, data="0x", kind=CallKind.MINT, label="mint", spends=spends)


# ── TransactionPlan ──────────────────────────────────────────────────


class TestTransactionPlan:
    def test_approvals_then_mint(self):
        plan = TransactionPlan(calls=(_approve(TOKEN_A), _approve(TOKEN_B), _mint(TOKEN_A, TOKEN_B)))
        assert len(plan) == 3
        assert len(plan.approvals) == 2
        assert plan.terminal.kind == CallKind.MINT

    def test_approval_after_spend_rejected(self):
        with pytest.raises(ValidationError, match="follows the spend"):
            TransactionPlan(calls=(_approve(TOKEN_A), _mint(TOKEN_A, TOKEN_B), _approve(TOKEN_B)))

    def test_spend_keyed_case_insensitively(self):
        with pytest.raises(ValidationError):
            TransactionPlan(calls=(_mint(TOKEN_A.lower()), _approve(TOKEN_A)))

    def test_two_terminals_rejected(self):
        with pytest.raises(ValidationError, match="terminal"):
            TransactionPlan(calls=(_mint(), _mint()))

    def test_terminal_must_be_last(self):
        swap = Call(target=BUNDLE, data="0x", kind=CallKind.SWAP)
        with pytest.raises(ValidationError, match="last"):
            TransactionPlan(calls=(_mint(), swap))

    def test_append_revalidates(self):
        plan = TransactionPlan().append(_mint(TOKEN_A))
        with pytest.raises(ValidationError):
            plan.append(_approve(TOKEN_A))

    def test_no_terminal(self):
        plan = TransactionPlan(calls=(_approve(TOKEN_A),))
        assert plan.terminal is None

    def test_frozen(self):
        plan = TransactionPlan()
        with pytest.raises(ValidationError):
            plan.calls = (_mint(),)  # type: ignore[misc]


# ── BundleSnapshot ───────────────────────────────────────────────────


def _snapshot(*weights: int) -> BundleSnapshot:
    tokens = [token_ref(TOKEN_A), token_ref(TOKEN_B)]
    return BundleSnapshot(
        address=BUNDLE, name="B", symbol="B",
        total_supply=Decimal(0), nav=Decimal(1), nav_native=10**18, creation_unit=10**18,
        components=tuple(ComponentSpec(token=t, weight_bps=w) for t, w in zip(tokens, weights)),
    )


class TestBundleSnapshot:
    def test_valid(self):
        snap = _snapshot(6000, 4000)
        assert snap.share_token.decimals == 18
        assert snap.user_value == Decimal(0)

    def test_weights_must_sum_to_10000(self):
        with pytest.raises(ValidationError, match="10000"):
            _snapshot(6000, 3000)

    def test_components_required(self):
        with pytest.raises(ValidationError, match="no components"):
            _snapshot()


# ── Requests ─────────────────────────────────────────────────────────


class TestRequests:
    def test_exact_basket(self):
        assert MintRequest(bundle=BUNDLE, shares="1").is_exact_basket

    def test_single_token(self):
        req = MintRequest(bundle=BUNDLE, input_token="USDC", input_amount="10")
        assert not req.is_exact_basket

    def test_both_modes_rejected(self):
        with pytest.raises(ValidationError, match="not both"):
            MintRequest(bundle=BUNDLE, shares="1", input_token="USDC", input_amount="1")

    def test_half_single_rejected(self):
        with pytest.raises(ValidationError):
            MintRequest(bundle=BUNDLE, input_token="USDC")

    def test_slippage_bounds(self):
        with pytest.raises(ValidationError):
            RedeemRequest(bundle=BUNDLE, shares="1", slippage_bps=10_000)


# ── ActionFailure ────────────────────────────────────────────────────


class TestActionFailure:
    def test_submission_failure_carries_step(self):
        exc = SubmissionFailed("boom", step_index=2, total_steps=3, approvals_succeeded=1)
        failure = ActionFailure.from_exception(exc)
        assert failure.error_type == "SubmissionFailed"
        assert failure.step_index == 2
        assert failure.total_steps == 3
        assert failure.approvals_succeeded == 1

    def test_below_minimum_carries_min_input(self):
        exc = BelowMinimumInvestment("too small", min_input="2.0", token_symbol="USDC")
        assert ActionFailure.from_exception(exc).min_input == "2.0"

    def test_swap_failure_carries_components(self):
        exc = SwapFailed("swap", failed=("BBB",), succeeded=("AAA",))
        assert ActionFailure.from_exception(exc).failed_components == ("BBB",)

    def test_unexpected(self):
        failure = ActionFailure.from_exception(RuntimeError("kaboom"))
        assert failure.error_type == "UnexpectedError"
        assert failure.message == "kaboom"
