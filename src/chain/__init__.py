"""Chain — ledger, token, router and wallet interfaces plus web3 wrappers."""

from src.chain.base import (
    BundleFactory,
    BundleLedger,
    QuoteOracle,
    SigningAgent,
    TokenGateway,
)
from src.chain.client import (
    ChainClient,
    RouterQuoteOracle,
    Web3BundleFactory,
    Web3BundleLedger,
    Web3TokenGateway,
    classify_chain_error,
    classify_rpc_payload,
)
from src.chain.models import Call, CallKind, is_native, same_address, short_address
from src.chain.wallet import Web3SigningAgent

__all__ = [
    "BundleFactory",
    "BundleLedger",
    "Call",
    "CallKind",
    "ChainClient",
    "QuoteOracle",
    "RouterQuoteOracle",
    "SigningAgent",
    "TokenGateway",
    "Web3BundleFactory",
    "Web3BundleLedger",
    "Web3SigningAgent",
    "Web3TokenGateway",
    "classify_chain_error",
    "classify_rpc_payload",
    "is_native",
    "same_address",
    "short_address",
]
