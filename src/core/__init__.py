"""Core — shared config loading, error hierarchy, and logging."""

from src.core.config import (
    NATIVE_ADDRESS,
    ChainConfig,
    Network,
    OrchestratorConfig,
    Settings,
    TokenTable,
    load_settings,
)
from src.core.errors import (
    AllowanceFailed,
    BelowMinimumInvestment,
    BundleError,
    ChainCallError,
    ChainError,
    ChainNetworkError,
    ChainRateLimitError,
    ChainRevertError,
    ChainUnsupportedError,
    ConfigError,
    EstimateUnavailable,
    InvalidAmount,
    InvalidBundle,
    QuoteUnavailable,
    StrategyUnsupported,
    SubmissionCancelled,
    SubmissionFailed,
    SwapFailed,
    WalletCapabilityError,
)
from src.core.logging import bind_request_context, clear_request_context, setup_logging

__all__ = [
    "AllowanceFailed",
    "BelowMinimumInvestment",
    "BundleError",
    "ChainCallError",
    "ChainConfig",
    "ChainError",
    "ChainNetworkError",
    "ChainRateLimitError",
    "ChainRevertError",
    "ChainUnsupportedError",
    "ConfigError",
    "EstimateUnavailable",
    "InvalidAmount",
    "InvalidBundle",
    "NATIVE_ADDRESS",
    "Network",
    "OrchestratorConfig",
    "QuoteUnavailable",
    "Settings",
    "StrategyUnsupported",
    "SubmissionCancelled",
    "SubmissionFailed",
    "SwapFailed",
    "TokenTable",
    "WalletCapabilityError",
    "bind_request_context",
    "clear_request_context",
    "load_settings",
    "setup_logging",
]
