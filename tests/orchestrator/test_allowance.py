"""Tests for ensure_allowance."""

from __future__ import annotations

from src.chain.models import CallKind
from src.core.config import NATIVE_ADDRESS
from src.orchestrator.allowance import ensure_allowance
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.models import TransactionPlan
from tests.conftest import BUNDLE, TOKEN_A, USER, FakeTokens, FakeWallet, token_ref

A_REF = token_ref(TOKEN_A)


class TestEnsureAllowance:
    async def test_insufficient_builds_exact_approval(self, tokens: FakeTokens):
        tokens.set_allowance(TOKEN_A, USER, BUNDLE, 10)
        call = await ensure_allowance(tokens, A_REF, USER, BUNDLE, 500)

        assert call is not None
        assert call.kind == CallKind.APPROVE
        assert call.token == TOKEN_A
        assert call.spender == BUNDLE
        assert call.amount == 500
        assert call.label == "approve AAA"

    async def test_sufficient_is_noop(self, tokens: FakeTokens):
        tokens.set_allowance(TOKEN_A, USER, BUNDLE, 500)
        assert await ensure_allowance(tokens, A_REF, USER, BUNDLE, 500) is None
        assert tokens.approvals_built == []

    async def test_native_never_approved(self, tokens: FakeTokens):
        native = token_ref(NATIVE_ADDRESS)
        assert await ensure_allowance(tokens, native, USER, BUNDLE, 10**18) is None

    async def test_zero_requirement(self, tokens: FakeTokens):
        assert await ensure_allowance(tokens, A_REF, USER, BUNDLE, 0) is None

    async def test_read_failure_counts_as_zero(self, tokens: FakeTokens):
        tokens.set_allowance(TOKEN_A, USER, BUNDLE, 10**30)
        tokens.failing_allowance.add(TOKEN_A.lower())
        call = await ensure_allowance(tokens, A_REF, USER, BUNDLE, 500)
        assert call is not None
        assert call.amount == 500

    async def test_custom_label(self, tokens: FakeTokens):
        call = await ensure_allowance(tokens, A_REF, USER, BUNDLE, 1, label="approve AAA for router")
        assert call.label == "approve AAA for router"

    async def test_idempotent_once_confirmed(self, tokens: FakeTokens):
        wallet = FakeWallet(tokens=tokens)
        first = await ensure_allowance(tokens, A_REF, USER, BUNDLE, 500)
        await BatchSubmitter(wallet).submit(TransactionPlan(calls=(first,)))

        second = await ensure_allowance(tokens, A_REF, USER, BUNDLE, 500)
        assert second is None
        assert len(tokens.approvals_built) == 1
