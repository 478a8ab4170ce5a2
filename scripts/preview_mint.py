"""Preview a single-token mint: expected and minimum shares, nothing sent.

Usage:
    uv run python -m scripts.preview_mint <bundle> <token> <amount>
    uv run python -m scripts.preview_mint 0xBundle... USDC 25
"""

import asyncio
import sys

import structlog

from src.chain import ChainClient, Web3SigningAgent
from src.core import BundleError, load_settings, setup_logging
from src.orchestrator import BundleOrchestrator

log = structlog.get_logger()


async def _run(bundle: str, token: str, amount: str) -> int:
    cfg = load_settings()
    if not cfg.chain.account:
        log.error("account_missing", hint="set BUNDLE_ACCOUNT")
        return 1

    client = ChainClient(cfg.chain, swap_deadline_secs=cfg.orchestrator.swap_deadline_secs)
    try:
        await client.verify_network()
        wallet = Web3SigningAgent(client.w3, cfg.chain.account, chain_id=cfg.chain.chain_id)
        orch = BundleOrchestrator.from_client(client, cfg, wallet)

        estimate = await orch.preview_mint(bundle, token, amount)
        basket = await orch.preview_exact_basket(bundle, estimate.min_human)
    finally:
        await client.close()

    print(f"\nMint preview for {estimate.input.human} {estimate.input.token.symbol}:")
    print(f"  expected shares: {estimate.expected_human}")
    print(f"  minimum shares:  {estimate.min_human}  ({estimate.slippage_bps} bps buffer)")
    if estimate.approximate:
        print("  (approximate: quote oracle unavailable, valued at par)")
    print("  basket for the minimum:")
    for q in basket:
        print(f"    {q.token.symbol:<8} {q.human}")
    return 0


def main() -> int:
    setup_logging()
    if len(sys.argv) != 4:
        print(__doc__)
        return 1
    try:
        return asyncio.run(_run(*sys.argv[1:4]))
    except BundleError as exc:
        log.error("preview_failed", error_type=type(exc).__name__, error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
