"""Allowance management — exact-amount approvals, only when needed."""

from __future__ import annotations

import structlog

from src.chain.base import TokenGateway
from src.chain.models import Call
from src.core.errors import ChainError
from src.orchestrator.models import TokenRef
from src.orchestrator.units import to_human

logger = structlog.get_logger(__name__)


async def ensure_allowance(
    gateway: TokenGateway,
    token: TokenRef,
    owner: str,
    spender: str,
    required: int,
    *,
    label: str = "",
) -> Call | None:
    """Return the approval call ``spender`` needs to pull ``required``, if any.

    - Native currency has no allowance: always ``None``.
    - Nothing required, or current allowance already covers it: ``None``.
    - Unreadable allowance counts as zero (an extra approval beats a
      reverted transfer).
    - The approval is for exactly ``required``, never unbounded.
    """
    if token.is_native or required <= 0:
        return None

    al_log = logger.bind(token=token.symbol, spender=spender, required=required)
    try:
        current = await gateway.allowance(token.address, owner, spender)
    except ChainError as exc:
        al_log.warning("allowance_read_failed", error=str(exc))
        current = 0

    if current >= required:
        al_log.debug("allowance_sufficient", current=current)
        return None

    al_log.info("approval_needed", current=current, human=to_human(token, required))
    return gateway.approve(
        token.address,
        spender,
        required,
        label=label or f"approve {token.symbol}",
    )
