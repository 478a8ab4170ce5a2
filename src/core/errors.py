"""Exception hierarchy — every error in the system has a typed home."""

from __future__ import annotations


class BundleError(Exception):
    """Base for all application errors."""


class ConfigError(BundleError):
    """Bad config, missing keys, invalid values."""


# ── Chain errors ───────────────────────────────────────────────────────


class ChainError(BundleError):
    """Base for all ledger / RPC issues."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChainNetworkError(ChainError):
    """Connection/timeout errors. Retryable."""


class ChainRateLimitError(ChainError):
    """429 or provider throttling. Retryable after backoff."""


class ChainRevertError(ChainError):
    """The call executed and reverted (or the receipt status was 0)."""

    def __init__(
        self, message: str, *, status_code: int | None = None, reason: str = ""
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.reason = reason


class ChainUnsupportedError(ChainError):
    """Target does not implement the function (unknown selector, empty revert)."""


class ChainCallError(ChainError):
    """Anything else the node or wallet rejected. Not retried."""


class WalletCapabilityError(ChainCallError):
    """The wallet cannot execute an atomic batch (EIP-5792 5700-5760)."""


# ── Orchestrator errors ────────────────────────────────────────────────


class InvalidAmount(BundleError):
    """Malformed, negative, non-finite or over-precise amount."""


class InvalidBundle(BundleError):
    """Bundle snapshot violates the component invariants."""


class BelowMinimumInvestment(BundleError):
    """Estimated shares fall below the bundle's creation unit."""

    def __init__(self, message: str, *, min_input: str, token_symbol: str) -> None:
        super().__init__(message)
        self.min_input = min_input
        self.token_symbol = token_symbol


class QuoteUnavailable(BundleError):
    """Quote oracle unreachable or returned nothing usable."""


class EstimateUnavailable(BundleError):
    """Not even the NAV-only estimate can be computed."""


class StrategyUnsupported(BundleError):
    """The ledger or router does not offer the entry point a strategy needs."""


class SwapFailed(BundleError):
    """One or more component swaps failed; nothing was minted."""

    def __init__(
        self,
        message: str,
        *,
        failed: tuple[str, ...] = (),
        succeeded: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.failed = failed
        self.succeeded = succeeded


class SubmissionFailed(BundleError):
    """A plan (atomic) or one of its steps (sequential) was rejected."""

    def __init__(
        self,
        message: str,
        *,
        step_index: int | None = None,
        total_steps: int = 0,
        approvals_succeeded: int = 0,
        atomic: bool = False,
        unsupported: bool = False,
    ) -> None:
        super().__init__(message)
        self.step_index = step_index
        self.total_steps = total_steps
        self.approvals_succeeded = approvals_succeeded
        self.atomic = atomic
        self.unsupported = unsupported


class AllowanceFailed(SubmissionFailed):
    """An approval step reverted."""


class SubmissionCancelled(SubmissionFailed):
    """Cancelled before the next queued step was issued."""
