"""Chain-level value types — a single call to send, and address helpers."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.config import NATIVE_ADDRESS


def same_address(a: str | None, b: str | None) -> bool:
    """Case-insensitive address equality (checksummed vs lowercase)."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


def is_native(address: str) -> bool:
    return same_address(address, NATIVE_ADDRESS)


def short_address(address: str) -> str:
    """Truncated display form used when no symbol is known."""
    return f"{address[:6]}..."


class CallKind(str, Enum):
    """What a call does to the account's funds."""

    APPROVE = "approve"
    SWAP = "swap"
    MINT = "mint"
    REDEEM = "redeem"

    @property
    def is_terminal(self) -> bool:
        return self in (CallKind.MINT, CallKind.REDEEM)


class Call(BaseModel):
    """One contract call: target, native value and encoded payload.

    ``spends`` lists the token addresses the call pulls from the account
    (via ``transferFrom``), which is what the plan's approval-ordering
    check keys on.  ``token``/``spender``/``amount`` describe approvals and
    swaps for logs and error messages.
    """

    model_config = ConfigDict(frozen=True)

    target: str
    value: int = Field(default=0, ge=0)
    data: str
    kind: CallKind
    label: str = ""
    spends: tuple[str, ...] = ()
    token: str | None = None
    spender: str | None = None
    amount: int = Field(default=0, ge=0)

    @field_validator("spends", mode="after")
    @classmethod
    def _lower_spends(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(addr.lower() for addr in v)

    def as_tx(self, sender: str) -> dict[str, object]:
        """Render as an ``eth_sendTransaction`` / ``wallet_sendCalls`` entry."""
        return {
            "from": sender,
            "to": self.target,
            "value": self.value,
            "data": self.data,
        }
