"""List every bundle the factory knows, with NAV and components.

Usage:
    uv run python -m scripts.list_bundles               # all bundles
    uv run python -m scripts.list_bundles 0xCreator...  # one creator's bundles
"""

import asyncio
import sys

import structlog

from src.chain import ChainClient
from src.core import BundleError, load_settings, setup_logging
from src.orchestrator import TokenResolver, fetch_snapshot, list_bundles

log = structlog.get_logger()


async def _run(creator: str | None) -> int:
    cfg = load_settings()
    client = ChainClient(cfg.chain, swap_deadline_secs=cfg.orchestrator.swap_deadline_secs)
    try:
        await client.verify_network()
        resolver = TokenResolver(
            client.tokens(), cfg.tokens.symbols, native_symbol=cfg.chain.native_symbol
        )
        addresses = await list_bundles(client.factory(), creator=creator)
        log.info("bundles_listed", count=len(addresses), creator=creator)

        for address in addresses:
            try:
                snap = await fetch_snapshot(client.bundle(address), resolver)
            except BundleError as exc:
                log.warning("bundle_unreadable", bundle=address, error=str(exc))
                continue
            print(f"\n{snap.symbol}  {snap.name}  ({snap.address})")
            print(f"  nav:    {snap.nav}")
            print(f"  supply: {snap.total_supply}")
            for comp in snap.components:
                print(f"  - {comp.token.symbol:<8} {comp.weight_bps / 100:>6.2f}%")
    finally:
        await client.close()
    return 0


def main() -> int:
    setup_logging()
    creator = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        return asyncio.run(_run(creator))
    except BundleError as exc:
        log.error("list_bundles_failed", error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
