"""Orchestrator data models — frozen Pydantic types for one mint/redeem request."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.chain.models import Call, CallKind, is_native
from src.core.errors import (
    BelowMinimumInvestment,
    BundleError,
    SubmissionFailed,
    SwapFailed,
)

SHARE_DECIMALS = 18
WEIGHT_TOTAL_BPS = 10_000


# ── Enums ────────────────────────────────────────────────────────────


class StrategyDecision(str, Enum):
    """How a mint is funded.  Chosen once per request."""

    EXACT_BASKET = "exact_basket"
    SINGLE_TOKEN_DIRECT = "single_token_direct"
    SINGLE_TOKEN_VIA_SWAP = "single_token_via_swap"


# ── Tokens & bundles ─────────────────────────────────────────────────


class TokenRef(BaseModel):
    """A resolved token: address, display symbol, decimal precision."""

    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str
    decimals: int = Field(ge=0, le=77)

    @property
    def is_native(self) -> bool:
        return is_native(self.address)


class ComponentSpec(BaseModel):
    """Target allocation of one bundle component."""

    model_config = ConfigDict(frozen=True)

    token: TokenRef
    weight_bps: int = Field(ge=0, le=WEIGHT_TOTAL_BPS)


class BundleSnapshot(BaseModel):
    """Read-only projection of a bundle, fetched fresh for every request.

    Never patched locally: a stale NAV must be re-read, not adjusted.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    name: str
    symbol: str
    creator: str = ""
    total_supply: Decimal
    nav: Decimal  # value per share, human units of the pricing token
    nav_native: int = Field(ge=0)  # 18-decimal fixed point
    creation_unit: int = Field(ge=0)  # minimum shares per mint, native units
    components: tuple[ComponentSpec, ...]
    component_balances: tuple[Decimal, ...] = ()
    user_share_balance: Decimal | None = Decimal(0)  # None when the read failed

    @model_validator(mode="after")
    def _check_components(self) -> "BundleSnapshot":
        if not self.components:
            raise ValueError(f"Bundle {self.address} has no components")
        total = sum(c.weight_bps for c in self.components)
        if total != WEIGHT_TOTAL_BPS:
            raise ValueError(
                f"Bundle {self.address} weights sum to {total} bps, expected {WEIGHT_TOTAL_BPS}"
            )
        return self

    @property
    def share_token(self) -> TokenRef:
        """The bundle's own share token (always 18 decimals)."""
        return TokenRef(address=self.address, symbol=self.symbol, decimals=SHARE_DECIMALS)

    @property
    def user_value(self) -> Decimal | None:
        """Mark-to-NAV value of the user's shares, if the balance is known."""
        if self.user_share_balance is None:
            return None
        return self.nav * self.user_share_balance


class AmountQuantity(BaseModel):
    """Human string and native integer for the same amount of one token.

    Only :mod:`src.orchestrator.units` builds these, so the two halves can
    never disagree about decimals.
    """

    model_config = ConfigDict(frozen=True)

    token: TokenRef
    human: str
    native: int = Field(ge=0)


# ── Plans ────────────────────────────────────────────────────────────


class TransactionPlan(BaseModel):
    """Ordered calls for one submission.

    Invariants (checked on every construction):
    - every approval of token T comes before any call that spends T;
    - at most one terminal mint/redeem call, and it is the last call.
    """

    model_config = ConfigDict(frozen=True)

    calls: tuple[Call, ...] = ()

    @model_validator(mode="after")
    def _check_order(self) -> "TransactionPlan":
        approved_at: dict[str, list[int]] = {}
        for i, call in enumerate(self.calls):
            if call.kind == CallKind.APPROVE and call.token:
                approved_at.setdefault(call.token.lower(), []).append(i)

        for i, call in enumerate(self.calls):
            for token in call.spends:
                late = [j for j in approved_at.get(token, ()) if j > i]
                if late:
                    raise ValueError(
                        f"Approval at step {late[0] + 1} follows the spend of "
                        f"{token} at step {i + 1}"
                    )

        terminal = [i for i, c in enumerate(self.calls) if c.kind.is_terminal]
        if len(terminal) > 1:
            raise ValueError(f"Plan has {len(terminal)} terminal calls, expected at most 1")
        if terminal and terminal[0] != len(self.calls) - 1:
            raise ValueError("Terminal mint/redeem call must be the last call")
        return self

    def append(self, call: Call) -> "TransactionPlan":
        return TransactionPlan(calls=self.calls + (call,))

    def extend(self, calls: list[Call] | tuple[Call, ...]) -> "TransactionPlan":
        return TransactionPlan(calls=self.calls + tuple(calls))

    def __len__(self) -> int:
        return len(self.calls)

    @property
    def approvals(self) -> tuple[Call, ...]:
        return tuple(c for c in self.calls if c.kind == CallKind.APPROVE)

    @property
    def terminal(self) -> Call | None:
        if self.calls and self.calls[-1].kind.is_terminal:
            return self.calls[-1]
        return None


# ── Results ──────────────────────────────────────────────────────────


class ShareEstimate(BaseModel):
    """Expected and minimum-acceptable shares for a single-token mint."""

    model_config = ConfigDict(frozen=True)

    input: AmountQuantity
    input_value: int = Field(description="Input value in the pricing unit, 18-decimal fixed point")
    expected_shares: int = Field(ge=0, description="Unbuffered, for preview")
    min_shares: int = Field(ge=0, description="After the slippage buffer")
    expected_human: str
    min_human: str
    slippage_bps: int
    approximate: bool = Field(
        default=False, description="True when the oracle was down and NAV-only math was used",
    )


class SubmissionReceipt(BaseModel):
    """What the submitter hands back once a plan has settled."""

    model_config = ConfigDict(frozen=True)

    tx_id: str = Field(description="Identifier of the terminal (or only) submission")
    tx_ids: tuple[str, ...] = ()
    atomic: bool = False
    calls_submitted: int = 0


class MintRequest(BaseModel):
    """Either ``shares`` (exact basket) or ``input_token`` + ``input_amount``."""

    model_config = ConfigDict(frozen=True)

    bundle: str
    shares: str | None = None
    input_token: str | None = None
    input_amount: str | None = None
    slippage_bps: int | None = Field(default=None, ge=0, lt=10_000)

    @model_validator(mode="after")
    def _one_mode(self) -> "MintRequest":
        single = self.input_token is not None or self.input_amount is not None
        if self.shares is not None and single:
            raise ValueError("Give either shares or input_token/input_amount, not both")
        if self.shares is None and (self.input_token is None or self.input_amount is None):
            raise ValueError("Single-token mint needs both input_token and input_amount")
        return self

    @property
    def is_exact_basket(self) -> bool:
        return self.shares is not None


class RedeemRequest(BaseModel):
    """Redeem ``shares`` for the basket, or for one ``output_token``."""

    model_config = ConfigDict(frozen=True)

    bundle: str
    shares: str
    output_token: str | None = None
    min_out: str | None = None
    slippage_bps: int | None = Field(default=None, ge=0, lt=10_000)


class ActionFailure(BaseModel):
    """Typed failure the presentation layer can render step by step."""

    model_config = ConfigDict(frozen=True)

    error_type: str
    message: str
    step_index: int | None = None
    total_steps: int = 0
    approvals_succeeded: int = 0
    min_input: str | None = None
    failed_components: tuple[str, ...] = ()

    @classmethod
    def from_exception(cls, exc: Exception) -> "ActionFailure":
        kwargs: dict[str, object] = {}
        if isinstance(exc, SubmissionFailed):
            kwargs.update(
                step_index=exc.step_index,
                total_steps=exc.total_steps,
                approvals_succeeded=exc.approvals_succeeded,
            )
        elif isinstance(exc, BelowMinimumInvestment):
            kwargs["min_input"] = exc.min_input
        elif isinstance(exc, SwapFailed):
            kwargs["failed_components"] = exc.failed
        error_type = type(exc).__name__ if isinstance(exc, BundleError) else "UnexpectedError"
        return cls(error_type=error_type, message=str(exc) or error_type, **kwargs)


class ActionResult(BaseModel):
    """The complete response to one mint or redeem request."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    request_id: str
    action: str  # "mint" | "redeem"
    bundle: str
    decision: StrategyDecision | None = None
    receipt: SubmissionReceipt | None = None
    estimate: ShareEstimate | None = None
    error: ActionFailure | None = None
    elapsed_ms: float = 0.0
    explain: str = ""

    @property
    def tx_id(self) -> str | None:
        return self.receipt.tx_id if self.receipt else None
