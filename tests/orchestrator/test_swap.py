"""Tests for SwapBasketAssembler and the proportional input split."""

from __future__ import annotations

import pytest

from src.chain.models import CallKind
from src.core.errors import ChainRevertError, QuoteUnavailable, SwapFailed
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.swap import SwapBasketAssembler, split_input
from src.orchestrator.units import quantity
from tests.conftest import (
    ONE,
    TOKEN_A,
    TOKEN_C,
    USDC,
    USER,
    FakeLedger,
    FakeOracle,
    FakeTokens,
    FakeWallet,
    make_snapshot,
    priced,
    token_ref,
)

USDC_REF = token_ref(USDC)


def _assembler(tokens, wallet, oracle) -> SwapBasketAssembler:
    return SwapBasketAssembler(oracle, tokens, BatchSubmitter(wallet))


class TestSplitInput:
    def test_proportional_with_remainder_to_last(self):
        assert split_input(100, [1, 1, 1]) == [33, 33, 34]

    def test_zero_weight_gets_nothing(self):
        assert split_input(10, [1, 0, 1]) == [5, 0, 5]

    def test_remainder_skips_trailing_zero_weight(self):
        assert split_input(10, [1, 2, 0]) == [3, 7, 0]

    def test_all_zero(self):
        assert split_input(10, [0, 0]) == [0, 0]

    @pytest.mark.parametrize("total", [1, 7, 10**6, 10**18 + 3])
    def test_parts_sum_to_total(self, total):
        assert sum(split_input(total, [3, 5, 11])) == total


class TestPlanLegs:
    async def test_quotes_everything_up_front(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        required = await ledger.get_required_amounts(ONE)
        legs = await _assembler(tokens, FakeWallet(), oracle).plan_legs(
            make_snapshot(ledger), required, quantity(USDC_REF, "2"),
        )

        assert [leg.amount_in for leg in legs] == [500_000, 500_000, 1_000_000]
        assert [leg.quoted_out for leg in legs] == required
        assert [leg.min_out for leg in legs] == required
        assert all(leg.needs_swap for leg in legs)

    async def test_min_out_takes_slippage_above_requirement(
        self, ledger: FakeLedger, tokens: FakeTokens
    ):
        oracle = priced(FakeOracle())
        required = await ledger.get_required_amounts(ONE)
        legs = await _assembler(tokens, FakeWallet(), oracle).plan_legs(
            make_snapshot(ledger), required, quantity(USDC_REF, "4"),
        )
        # 2x the requirement quoted, 1% slippage
        assert legs[0].quoted_out == 2 * ONE
        assert legs[0].min_out == 2 * ONE * 99 // 100

    async def test_short_quote_fails_before_sending(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        oracle.set_rate(USDC, TOKEN_C, ONE, 10**6)  # half the fair rate
        wallet = FakeWallet(tokens=tokens)
        required = await ledger.get_required_amounts(ONE)

        with pytest.raises(SwapFailed) as exc_info:
            await _assembler(tokens, wallet, oracle).plan_legs(
                make_snapshot(ledger), required, quantity(USDC_REF, "2"),
            )
        assert exc_info.value.failed == ("CCC",)
        assert wallet.sent == [] and wallet.batches == []

    async def test_oracle_down(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = FakeOracle()
        oracle.down = True
        with pytest.raises(QuoteUnavailable):
            await _assembler(tokens, FakeWallet(), oracle).plan_legs(
                make_snapshot(ledger), [ONE, 10**8, 2 * ONE], quantity(USDC_REF, "2"),
            )

    async def test_component_equal_to_input_needs_no_swap(self, tokens: FakeTokens):
        ledger = FakeLedger(
            components=[(USDC, 5000), (TOKEN_A, 5000)],
            per_share={USDC: 10**6, TOKEN_A: 2 * ONE},
        )
        oracle = priced(FakeOracle())
        required = await ledger.get_required_amounts(ONE)
        legs = await _assembler(tokens, FakeWallet(), oracle).plan_legs(
            make_snapshot(ledger), required, quantity(USDC_REF, "2"),
        )
        assert [leg.needs_swap for leg in legs] == [False, True]
        assert legs[0].amount_in == 10**6


class TestExecute:
    async def _legs(self, ledger, tokens, oracle):
        required = await ledger.get_required_amounts(ONE)
        return await _assembler(tokens, FakeWallet(), oracle).plan_legs(
            make_snapshot(ledger), required, quantity(USDC_REF, "2"),
        )

    async def test_atomic_is_one_plan(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        legs = await self._legs(ledger, tokens, oracle)
        wallet = FakeWallet(atomic=True, tokens=tokens)

        outcome = await _assembler(tokens, wallet, oracle).execute(legs, USDC_REF, USER)

        assert len(wallet.batches) == 1
        kinds = [c.kind for c in wallet.batches[0]]
        assert kinds == [CallKind.APPROVE, CallKind.SWAP, CallKind.SWAP, CallKind.SWAP]
        assert len(outcome.receipts) == 1

    async def test_atomic_failure_is_swap_failure(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        legs = await self._legs(ledger, tokens, oracle)
        wallet = FakeWallet(
            atomic=True,
            fail_on=lambda c: ChainRevertError("K") if c.kind == CallKind.SWAP else None,
        )
        with pytest.raises(SwapFailed) as exc_info:
            await _assembler(tokens, wallet, oracle).execute(legs, USDC_REF, USER)
        assert exc_info.value.failed == ("AAA", "BBB", "CCC")

    async def test_sequential_swaps_after_approval(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        legs = await self._legs(ledger, tokens, oracle)
        wallet = FakeWallet(tokens=tokens)

        outcome = await _assembler(tokens, wallet, oracle).execute(legs, USDC_REF, USER)

        assert wallet.sent[0].kind == CallKind.APPROVE
        assert [c.kind for c in wallet.sent[1:]] == [CallKind.SWAP] * 3
        assert len(outcome.receipts) == 3

    async def test_existing_router_allowance_skips_approval(
        self, ledger: FakeLedger, tokens: FakeTokens
    ):
        oracle = priced(FakeOracle())
        tokens.set_allowance(USDC, USER, oracle.spender, 10**9)
        legs = await self._legs(ledger, tokens, oracle)
        wallet = FakeWallet(tokens=tokens)

        await _assembler(tokens, wallet, oracle).execute(legs, USDC_REF, USER)
        assert all(c.kind == CallKind.SWAP for c in wallet.sent)

    async def test_partial_failure_names_components(self, ledger: FakeLedger, tokens: FakeTokens):
        oracle = priced(FakeOracle())
        legs = await self._legs(ledger, tokens, oracle)
        wallet = FakeWallet(
            tokens=tokens,
            fail_on=lambda c: ChainRevertError("K") if c.token == TOKEN_A and c.kind == CallKind.SWAP else None,
        )
        with pytest.raises(SwapFailed, match="1 of 3|2 of 3") as exc_info:
            await _assembler(tokens, wallet, oracle).execute(legs, USDC_REF, USER)
        assert exc_info.value.failed == ("AAA",)
        assert exc_info.value.succeeded == ("BBB", "CCC")
        assert not any(c.kind.is_terminal for c in wallet.sent)
