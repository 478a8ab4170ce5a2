"""Orchestrator — from a mint/redeem request to a submitted transaction plan."""

from src.orchestrator.allowance import ensure_allowance
from src.orchestrator.batch import BatchSubmitter
from src.orchestrator.estimator import estimate_shares, price_input
from src.orchestrator.models import (
    ActionFailure,
    ActionResult,
    AmountQuantity,
    BundleSnapshot,
    ComponentSpec,
    MintRequest,
    RedeemRequest,
    ShareEstimate,
    StrategyDecision,
    SubmissionReceipt,
    TokenRef,
    TransactionPlan,
)
from src.orchestrator.orchestrate import BundleOrchestrator
from src.orchestrator.snapshot import fetch_snapshot, list_bundles
from src.orchestrator.strategy import MintStrategySelector, StrategyOutcome
from src.orchestrator.swap import SwapBasketAssembler, SwapLeg, SwapOutcome, split_input
from src.orchestrator.tokens import TokenResolver
from src.orchestrator.units import format_units, parse_units, to_human, to_native

__all__ = [
    # Main entry point
    "BundleOrchestrator",
    # Components (usable individually)
    "BatchSubmitter",
    "MintStrategySelector",
    "SwapBasketAssembler",
    "TokenResolver",
    "ensure_allowance",
    "estimate_shares",
    "fetch_snapshot",
    "list_bundles",
    "price_input",
    "split_input",
    # Units
    "format_units",
    "parse_units",
    "to_human",
    "to_native",
    # Models
    "ActionFailure",
    "ActionResult",
    "AmountQuantity",
    "BundleSnapshot",
    "ComponentSpec",
    "MintRequest",
    "RedeemRequest",
    "ShareEstimate",
    "StrategyDecision",
    "StrategyOutcome",
    "SubmissionReceipt",
    "SwapLeg",
    "SwapOutcome",
    "TokenRef",
    "TransactionPlan",
]
