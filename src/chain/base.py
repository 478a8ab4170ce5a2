"""External contracts — what the orchestrator needs from the ledger side.

The orchestrator only ever talks to these abstract interfaces.  The web3
implementations live in :mod:`src.chain.client` and :mod:`src.chain.wallet`;
tests substitute in-memory fakes.

Read methods raise :class:`~src.core.errors.ChainError` subclasses on
failure.  Encoder methods are pure: they build a :class:`Call` and never
touch the network.
"""

from __future__ import annotations

import abc

import structlog

from src.chain.models import Call

logger = structlog.get_logger(__name__)


class BundleLedger(abc.ABC):
    """One deployed bundle contract."""

    @property
    @abc.abstractmethod
    def address(self) -> str:
        ...

    # ── reads ─────────────────────────────────────────────────────────

    @abc.abstractmethod
    async def name(self) -> str: ...

    @abc.abstractmethod
    async def symbol(self) -> str: ...

    @abc.abstractmethod
    async def total_supply(self) -> int: ...

    @abc.abstractmethod
    async def nav(self) -> int:
        """Value per share, 18-decimal fixed point in the pricing unit."""
        ...

    @abc.abstractmethod
    async def creator(self) -> str: ...

    @abc.abstractmethod
    async def creation_unit(self) -> int:
        """Minimum shares (native units) one mint may create."""
        ...

    @abc.abstractmethod
    async def get_components(self) -> list[tuple[str, int]]:
        """``(token_address, weight_bps)`` in bundle order."""
        ...

    @abc.abstractmethod
    async def get_component_balances(self) -> list[int]: ...

    @abc.abstractmethod
    async def get_required_amounts(self, shares: int) -> list[int]:
        """Native amount of each component needed to mint ``shares``."""
        ...

    @abc.abstractmethod
    async def get_redeem_amounts(self, shares: int) -> list[int]: ...

    @abc.abstractmethod
    async def balance_of(self, owner: str) -> int: ...

    # ── encoders ──────────────────────────────────────────────────────

    @abc.abstractmethod
    def mint_exact_basket(self, shares: int, spends: tuple[str, ...]) -> Call: ...

    @abc.abstractmethod
    def mint_from_single(
        self, token: str, amount: int, min_shares: int, *, value: int = 0
    ) -> Call: ...

    @abc.abstractmethod
    def redeem_for_basket(self, shares: int) -> Call: ...

    @abc.abstractmethod
    def redeem_for_single(self, shares: int, token: str, min_out: int) -> Call: ...


class BundleFactory(abc.ABC):
    """Registry of deployed bundles."""

    @abc.abstractmethod
    async def get_all_bundles(self) -> list[str]: ...

    @abc.abstractmethod
    async def get_creator_bundles(self, creator: str) -> list[str]: ...


class TokenGateway(abc.ABC):
    """Standard token reads plus the approve encoder, keyed by token address.

    The native sentinel address has a balance but no decimals call, no
    symbol call and no allowance.
    """

    @abc.abstractmethod
    async def decimals(self, token: str) -> int: ...

    @abc.abstractmethod
    async def symbol(self, token: str) -> str: ...

    @abc.abstractmethod
    async def balance_of(self, token: str, owner: str) -> int: ...

    @abc.abstractmethod
    async def allowance(self, token: str, owner: str, spender: str) -> int: ...

    @abc.abstractmethod
    def approve(self, token: str, spender: str, amount: int, *, label: str = "") -> Call: ...


class QuoteOracle(abc.ABC):
    """Price quotes and swap calls.  Never trusted for settlement amounts."""

    @property
    @abc.abstractmethod
    def spender(self) -> str:
        """Address that must be approved before :meth:`swap` calls pull tokens."""
        ...

    @abc.abstractmethod
    async def quote(self, amount_in: int, token_in: str, token_out: str) -> int: ...

    @abc.abstractmethod
    def swap(
        self,
        amount_in: int,
        min_out: int,
        token_in: str,
        token_out: str,
        recipient: str,
        *,
        label: str = "",
    ) -> Call: ...


class SigningAgent(abc.ABC):
    """The connected wallet.  Submits calls on behalf of :attr:`account`.

    The atomic-batch capability is probed once per agent instance and
    cached; :meth:`supports_atomic_batch` is the only way callers ask.
    """

    def __init__(self) -> None:
        self._atomic_batch: bool | None = None

    @property
    @abc.abstractmethod
    def account(self) -> str:
        ...

    async def supports_atomic_batch(self) -> bool:
        if self._atomic_batch is None:
            self._atomic_batch = await self._probe_atomic_batch()
            logger.info(
                "wallet_capabilities",
                account=self.account,
                atomic_batch=self._atomic_batch,
            )
        return self._atomic_batch

    def disable_atomic_batch(self) -> None:
        """Stop batching for the rest of this agent's life."""
        self._atomic_batch = False

    @abc.abstractmethod
    async def _probe_atomic_batch(self) -> bool:
        """Ask the wallet once.  Must return ``False`` rather than raise."""
        ...

    @abc.abstractmethod
    async def send_calls(self, calls: list[Call]) -> str:
        """Submit ``calls`` as one atomic unit and wait until it settles.

        Returns the identifier of the settled bundle; raises ChainError if
        the batch is rejected or any call in it reverts.
        """
        ...

    @abc.abstractmethod
    async def send_transaction(self, call: Call) -> str:
        """Submit one call, returning its transaction hash (unconfirmed)."""
        ...

    @abc.abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> None:
        """Block until ``tx_hash`` is mined; raise ChainRevertError on status 0."""
        ...
