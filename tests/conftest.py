"""Shared fixtures: in-memory fakes for every external contract."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import pytest

from src.chain.base import BundleFactory, BundleLedger, QuoteOracle, SigningAgent, TokenGateway
from src.chain.models import Call, CallKind, is_native
from src.core.config import NATIVE_ADDRESS
from src.core.errors import ChainError, ChainNetworkError
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.models import BundleSnapshot, ComponentSpec, TokenRef
from src.orchestrator.tokens import TokenResolver

ONE = 10**18

USER = "0x00000000000000000000000000000000000000Aa"
BUNDLE = "0x0000000000000000000000000000000000000B00"
ROUTER = "0x0000000000000000000000000000000000000F00"
USDC = "0x0000000000000000000000000000000000000C00"
TOKEN_A = "0x000000000000000000000000000000000000000A"
TOKEN_B = "0x000000000000000000000000000000000000000B"
TOKEN_C = "0x000000000000000000000000000000000000000C"

SYMBOLS = {USDC: "USDC", TOKEN_A: "AAA", TOKEN_B: "BBB", TOKEN_C: "CCC"}
DECIMALS = {USDC: 6, TOKEN_A: 18, TOKEN_B: 8, TOKEN_C: 18}


# ── Fakes ────────────────────────────────────────────────────────────


class FakeTokens(TokenGateway):
    """Token reads backed by dicts.  Approvals land only when the wallet confirms."""

    def __init__(self) -> None:
        self.decimals_map = {a.lower(): d for a, d in DECIMALS.items()}
        self.symbols = {a.lower(): s for a, s in SYMBOLS.items()}
        self.balances: dict[tuple[str, str], int] = {}
        self.allowances: dict[tuple[str, str, str], int] = {}
        self.failing_decimals: set[str] = set()
        self.failing_allowance: set[str] = set()
        self.decimals_reads = 0
        self.approvals_built: list[Call] = []

    @staticmethod
    def _key(*parts: str) -> tuple[str, ...]:
        return tuple(p.lower() for p in parts)

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[self._key(token, owner, spender)] = amount

    async def decimals(self, token: str) -> int:
        self.decimals_reads += 1
        if token.lower() in self.failing_decimals or token.lower() not in self.decimals_map:
            raise ChainError(f"decimals() reverted on {token}")
        return self.decimals_map[token.lower()]

    async def symbol(self, token: str) -> str:
        if token.lower() not in self.symbols:
            raise ChainError(f"symbol() reverted on {token}")
        return self.symbols[token.lower()]

    async def balance_of(self, token: str, owner: str) -> int:
        return self.balances.get(self._key(token, owner), 0)

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        if token.lower() in self.failing_allowance:
            raise ChainNetworkError("allowance read timed out")
        return self.allowances.get(self._key(token, owner, spender), 0)

    def approve(self, token: str, spender: str, amount: int, *, label: str = "") -> Call:
        call = Call(
            target=token,
            data=f"approve:{spender}:{amount}",
            kind=CallKind.APPROVE,
            label=label or "approve",
            token=token,
            spender=spender,
            amount=amount,
        )
        self.approvals_built.append(call)
        return call


class FakeLedger(BundleLedger):
    """A bundle whose required amounts scale linearly with shares."""

    def __init__(
        self,
        *,
        address: str = BUNDLE,
        components: list[tuple[str, int]] | None = None,
        per_share: dict[str, int] | None = None,
        nav: int = 2 * ONE,
        creation_unit: int = ONE,
        symbol: str = "BNDL",
    ) -> None:
        self._address = address
        self.components = components or [(TOKEN_A, 4000), (TOKEN_B, 3000), (TOKEN_C, 3000)]
        # native amount of each component per 1.0 share
        self.per_share = per_share or {TOKEN_A: ONE, TOKEN_B: 10**8, TOKEN_C: 2 * ONE}
        self.nav_value = nav
        self.creation_unit_value = creation_unit
        self.symbol_value = symbol
        self.share_balances: dict[str, int] = {}
        self.fail_nav = False
        self.fail_balance = False

    @property
    def address(self) -> str:
        return self._address

    async def name(self) -> str:
        return f"{self.symbol_value} Bundle"

    async def symbol(self) -> str:
        return self.symbol_value

    async def total_supply(self) -> int:
        return 100 * ONE

    async def nav(self) -> int:
        if self.fail_nav:
            raise ChainNetworkError("nav() timed out")
        return self.nav_value

    async def creator(self) -> str:
        return USER

    async def creation_unit(self) -> int:
        return self.creation_unit_value

    async def get_components(self) -> list[tuple[str, int]]:
        return list(self.components)

    async def get_component_balances(self) -> list[int]:
        return [self.per_share.get(addr, 0) * 100 for addr, _ in self.components]

    async def get_required_amounts(self, shares: int) -> list[int]:
        return [self.per_share.get(addr, 0) * shares // ONE for addr, _ in self.components]

    async def get_redeem_amounts(self, shares: int) -> list[int]:
        return await self.get_required_amounts(shares)

    async def balance_of(self, owner: str) -> int:
        if self.fail_balance:
            raise ChainNetworkError("balanceOf() timed out")
        return self.share_balances.get(owner.lower(), 0)

    def mint_exact_basket(self, shares: int, spends: tuple[str, ...]) -> Call:
        return Call(
            target=self._address,
            data=f"mintExactBasket:{shares}",
            kind=CallKind.MINT,
            label="mintExactBasket",
            spends=spends,
        )

    def mint_from_single(
        self, token: str, amount: int, min_shares: int, *, value: int = 0
    ) -> Call:
        return Call(
            target=self._address,
            value=value,
            data=f"mintFromSingle:{token}:{amount}:{min_shares}",
            kind=CallKind.MINT,
            label="mintFromSingle",
            spends=() if is_native(token) else (token,),
            token=token,
            amount=amount,
        )

    def redeem_for_basket(self, shares: int) -> Call:
        return Call(
            target=self._address,
            data=f"redeemForBasket:{shares}",
            kind=CallKind.REDEEM,
            label="redeemForBasket",
        )

    def redeem_for_single(self, shares: int, token: str, min_out: int) -> Call:
        return Call(
            target=self._address,
            data=f"redeemForSingle:{shares}:{token}:{min_out}",
            kind=CallKind.REDEEM,
            label="redeemForSingle",
            token=token,
            amount=min_out,
        )


class FakeOracle(QuoteOracle):
    """Quotes from a rate table: ``amount_out = amount_in × num // den``."""

    def __init__(self) -> None:
        self.rates: dict[tuple[str, str], tuple[int, int]] = {}
        self.down = False
        self.quotes = 0

    def set_rate(self, token_in: str, token_out: str, num: int, den: int) -> None:
        self.rates[(token_in.lower(), token_out.lower())] = (num, den)

    @property
    def spender(self) -> str:
        return ROUTER

    async def quote(self, amount_in: int, token_in: str, token_out: str) -> int:
        self.quotes += 1
        if self.down:
            raise ChainNetworkError("router unreachable")
        if token_in.lower() == token_out.lower():
            return amount_in
        num, den = self.rates.get((token_in.lower(), token_out.lower()), (0, 1))
        return amount_in * num // den

    def swap(
        self,
        amount_in: int,
        min_out: int,
        token_in: str,
        token_out: str,
        recipient: str,
        *,
        label: str = "",
    ) -> Call:
        native_in = is_native(token_in)
        return Call(
            target=ROUTER,
            value=amount_in if native_in else 0,
            data=f"swap:{token_in}:{token_out}:{amount_in}:{min_out}",
            kind=CallKind.SWAP,
            label=label or "swap",
            spends=() if native_in else (token_in,),
            token=token_out,
            amount=amount_in,
        )


class FakeWallet(SigningAgent):
    """Records every submission.  ``fail_on`` picks calls to reject."""

    def __init__(
        self,
        *,
        atomic: bool = False,
        tokens: FakeTokens | None = None,
        fail_on: Callable[[Call], ChainError | None] | None = None,
        batch_error: ChainError | None = None,
    ) -> None:
        super().__init__()
        self.atomic = atomic
        self.tokens = tokens
        self.fail_on = fail_on
        # raised by the wallet itself for every batch, before any call runs
        self.batch_error = batch_error
        self.batches: list[list[Call]] = []
        self.sent: list[Call] = []
        self.probes = 0
        self._counter = 0

    @property
    def account(self) -> str:
        return USER

    async def _probe_atomic_batch(self) -> bool:
        self.probes += 1
        return self.atomic

    def _check(self, call: Call) -> None:
        if self.fail_on is not None:
            error = self.fail_on(call)
            if error is not None:
                raise error

    def _settle(self, call: Call) -> None:
        if call.kind == CallKind.APPROVE and self.tokens is not None:
            self.tokens.set_allowance(call.token, USER, call.spender, call.amount)

    async def send_calls(self, calls: list[Call]) -> str:
        self.batches.append(list(calls))
        if self.batch_error is not None:
            raise self.batch_error
        for call in calls:
            self._check(call)
        for call in calls:
            self._settle(call)
        return f"0xbatch{len(self.batches)}"

    async def send_transaction(self, call: Call) -> str:
        self.sent.append(call)
        self._check(call)
        self._counter += 1
        self._settle(call)
        return f"0xtx{self._counter}"

    async def wait_for_receipt(self, tx_hash: str) -> None:
        return None

    @property
    def terminal_sent(self) -> list[Call]:
        calls = self.sent + [c for batch in self.batches for c in batch]
        return [c for c in calls if c.kind.is_terminal]


class FakeFactory(BundleFactory):
    def __init__(self, bundles: dict[str, str] | None = None) -> None:
        # bundle address → creator
        self.bundles = bundles or {BUNDLE: USER}

    async def get_all_bundles(self) -> list[str]:
        return list(self.bundles)

    async def get_creator_bundles(self, creator: str) -> list[str]:
        return [b for b, c in self.bundles.items() if c.lower() == creator.lower()]


# ── Builders ─────────────────────────────────────────────────────────


def token_ref(address: str) -> TokenRef:
    if is_native(address):
        return TokenRef(address=NATIVE_ADDRESS, symbol="BERA", decimals=18)
    return TokenRef(address=address, symbol=SYMBOLS[address], decimals=DECIMALS[address])


def make_snapshot(
    ledger: FakeLedger,
    *,
    user_shares: Decimal | None = Decimal(0),
) -> BundleSnapshot:
    """Snapshot matching ``ledger`` without going through the reader."""
    return BundleSnapshot(
        address=ledger.address,
        name=f"{ledger.symbol_value} Bundle",
        symbol=ledger.symbol_value,
        creator=USER,
        total_supply=Decimal(100),
        nav=Decimal(ledger.nav_value) / Decimal(ONE),
        nav_native=ledger.nav_value,
        creation_unit=ledger.creation_unit_value,
        components=tuple(
            ComponentSpec(token=token_ref(addr), weight_bps=w) for addr, w in ledger.components
        ),
        user_share_balance=user_shares,
    )


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def tokens() -> FakeTokens:
    return FakeTokens()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def resolver(tokens: FakeTokens) -> TokenResolver:
    return TokenResolver(tokens, {USDC: "USDC"}, native_symbol="BERA")


@pytest.fixture
def wallet(tokens: FakeTokens) -> FakeWallet:
    return FakeWallet(tokens=tokens)


@pytest.fixture
def submitter(wallet: FakeWallet) -> BatchSubmitter:
    return BatchSubmitter(wallet)


def priced(oracle: FakeOracle) -> FakeOracle:
    """Every component at 0.5 USDC per whole token, so NAV 2.0 matches the basket."""
    for token, unit in ((TOKEN_A, ONE), (TOKEN_B, 10**8), (TOKEN_C, ONE)):
        oracle.set_rate(token, USDC, 5 * 10**5, unit)
        oracle.set_rate(USDC, token, 2 * unit, 10**6)
    return oracle
