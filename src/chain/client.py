"""Wrapped web3 contracts — retries, error classification, structured logging."""

from __future__ import annotations

import time
from typing import Any

import structlog
from aiohttp import ClientError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.contract import AsyncContract
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    Web3RPCError,
)

from src.chain.abis import BUNDLE_ABI, ERC20_ABI, FACTORY_ABI, ROUTER_ABI
from src.chain.base import BundleFactory, BundleLedger, QuoteOracle, TokenGateway
from src.chain.models import Call, CallKind, is_native, same_address
from src.core.config import ChainConfig
from src.core.errors import (
    ChainCallError,
    ChainError,
    ChainNetworkError,
    ChainRateLimitError,
    ChainRevertError,
    ChainUnsupportedError,
    ConfigError,
    WalletCapabilityError,
)

log = structlog.get_logger()

# ── Error classification ───────────────────────────────────────────────

_UNSUPPORTED_MARKERS = (
    "function selector was not recognized",
    "unrecognized function selector",
    "selector not found",
    "function not found",
    "method not found",
    "does not exist",
    "not supported",
    "unsupported",
    "missing revert data",
)

# JSON-RPC "method not found" and EIP-1193 "unsupported method"
_UNSUPPORTED_CODES = (-32601, 4200)
_RATE_LIMIT_CODES = (-32005, 429)
_USER_REJECTED = 4001
# EIP-5792 wallet-side batch errors (unsupported chain, atomicity, ...)
_WALLET_BATCH_CODES = range(5700, 5761)


def is_unsupported_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _UNSUPPORTED_MARKERS)


def _classify_logic_error(exc: ContractLogicError) -> ChainError:
    msg = str(exc.message or exc)
    reason = msg.removeprefix("execution reverted").lstrip(": ").strip()
    data = exc.data if isinstance(exc.data, str) else ""
    # A bare revert with no reason and no data is what an unknown selector
    # produces on a contract without a fallback.
    if (not reason and data in ("", "0x")) or is_unsupported_message(msg):
        return ChainUnsupportedError(msg)
    return ChainRevertError(msg, reason=reason)


def classify_rpc_payload(error: dict[str, Any]) -> ChainError:
    """Classify a JSON-RPC ``error`` object (node or wallet)."""
    code = error.get("code")
    msg = str(error.get("message") or "RPC error")
    data = error.get("data")

    if isinstance(code, int) and code in _WALLET_BATCH_CODES:
        return WalletCapabilityError(msg, status_code=code)
    if code in _RATE_LIMIT_CODES or "rate limit" in msg.lower():
        return ChainRateLimitError(msg, status_code=code)
    if code in _UNSUPPORTED_CODES or is_unsupported_message(msg):
        return ChainUnsupportedError(msg, status_code=code)
    if code == _USER_REJECTED:
        return ChainCallError(f"Rejected by wallet: {msg}", status_code=code)
    if "revert" in msg.lower():
        reason = msg.split("reverted", 1)[-1].lstrip(": ").strip()
        if not reason and data in (None, "", "0x"):
            return ChainUnsupportedError(msg, status_code=code)
        return ChainRevertError(msg, status_code=code, reason=reason)
    return ChainCallError(msg, status_code=code)


def _classify_rpc_error(exc: Web3RPCError) -> ChainError:
    response = exc.rpc_response or {}
    return classify_rpc_payload(response.get("error") or {"message": str(exc)})


def classify_chain_error(exc: Exception) -> ChainError:
    """Turn any web3 / transport exception into our typed hierarchy."""
    if isinstance(exc, ChainError):
        return exc
    if isinstance(exc, (ClientError, TimeExhausted, OSError)):
        return ChainNetworkError(str(exc) or type(exc).__name__)
    if isinstance(exc, BadFunctionCallOutput):
        return ChainUnsupportedError(str(exc))
    if isinstance(exc, ContractLogicError):
        return _classify_logic_error(exc)
    if isinstance(exc, Web3RPCError):
        return _classify_rpc_error(exc)
    return ChainCallError(str(exc))


# ── Retry decorator for read operations ────────────────────────────────

_RETRYABLE = (ChainNetworkError, ChainRateLimitError)

_read_retry = retry(
    retry=retry_if_exception_type(_RETRYABLE),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)


class _ContractReader:
    """Shared read path: one retried, classified ``.call()``."""

    def __init__(self, contract: AsyncContract, client: str) -> None:
        self._contract = contract
        self._log = log.bind(client=client, contract=contract.address)

    @_read_retry
    async def _call(self, fn_name: str, *args: Any) -> Any:
        try:
            return await getattr(self._contract.functions, fn_name)(*args).call()
        except Exception as exc:
            self._log.warning("read_failed", fn=fn_name, error=str(exc))
            raise classify_chain_error(exc) from exc


# ── Bundle ledger ──────────────────────────────────────────────────────


class Web3BundleLedger(BundleLedger, _ContractReader):
    """A bundle contract read and encoded through web3."""

    def __init__(self, w3: AsyncWeb3, address: str) -> None:
        contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=BUNDLE_ABI)
        _ContractReader.__init__(self, contract, "bundle")

    @property
    def address(self) -> str:
        return self._contract.address

    async def name(self) -> str:
        return str(await self._call("name"))

    async def symbol(self) -> str:
        return str(await self._call("symbol"))

    async def total_supply(self) -> int:
        return int(await self._call("totalSupply"))

    async def nav(self) -> int:
        return int(await self._call("nav"))

    async def creator(self) -> str:
        return str(await self._call("creator"))

    async def creation_unit(self) -> int:
        return int(await self._call("creationUnit"))

    async def get_components(self) -> list[tuple[str, int]]:
        raw = await self._call("getComponents")
        return [(str(c[0]), int(c[1])) for c in raw]

    async def get_component_balances(self) -> list[int]:
        return [int(b) for b in await self._call("getComponentBalances")]

    async def get_required_amounts(self, shares: int) -> list[int]:
        return [int(a) for a in await self._call("getRequiredAmounts", shares)]

    async def get_redeem_amounts(self, shares: int) -> list[int]:
        return [int(a) for a in await self._call("getRedeemAmounts", shares)]

    async def balance_of(self, owner: str) -> int:
        return int(await self._call("balanceOf", AsyncWeb3.to_checksum_address(owner)))

    def _encode(self, fn_name: str, args: list[Any]) -> str:
        return self._contract.encode_abi(fn_name, args=args)

    def mint_exact_basket(self, shares: int, spends: tuple[str, ...]) -> Call:
        return Call(
            target=self.address,
            data=self._encode("mintExactBasket", [shares]),
            kind=CallKind.MINT,
            label="mintExactBasket",
            spends=spends,
        )

    def mint_from_single(
        self, token: str, amount: int, min_shares: int, *, value: int = 0
    ) -> Call:
        return Call(
            target=self.address,
            value=value,
            data=self._encode(
                "mintFromSingle",
                [AsyncWeb3.to_checksum_address(token), amount, min_shares],
            ),
            kind=CallKind.MINT,
            label="mintFromSingle",
            spends=() if is_native(token) else (token,),
            token=token,
            amount=amount,
        )

    def redeem_for_basket(self, shares: int) -> Call:
        return Call(
            target=self.address,
            data=self._encode("redeemForBasket", [shares]),
            kind=CallKind.REDEEM,
            label="redeemForBasket",
        )

    def redeem_for_single(self, shares: int, token: str, min_out: int) -> Call:
        return Call(
            target=self.address,
            data=self._encode(
                "redeemForSingle",
                [shares, AsyncWeb3.to_checksum_address(token), min_out],
            ),
            kind=CallKind.REDEEM,
            label="redeemForSingle",
            token=token,
        )


# ── Factory ────────────────────────────────────────────────────────────


class Web3BundleFactory(BundleFactory, _ContractReader):
    def __init__(self, w3: AsyncWeb3, address: str) -> None:
        contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=FACTORY_ABI)
        _ContractReader.__init__(self, contract, "factory")

    async def get_all_bundles(self) -> list[str]:
        return [str(a) for a in await self._call("getAllBundles")]

    async def get_creator_bundles(self, creator: str) -> list[str]:
        return [
            str(a)
            for a in await self._call("getCreatorBundles", AsyncWeb3.to_checksum_address(creator))
        ]


# ── Tokens ─────────────────────────────────────────────────────────────


class Web3TokenGateway(TokenGateway):
    """Standard token calls; contracts are built lazily per address."""

    def __init__(self, w3: AsyncWeb3, *, native_symbol: str = "ETH") -> None:
        self._w3 = w3
        self._native_symbol = native_symbol
        self._readers: dict[str, _ContractReader] = {}
        self._log = log.bind(client="tokens")

    def _reader(self, token: str) -> _ContractReader:
        key = token.lower()
        if key not in self._readers:
            contract = self._w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(token), abi=ERC20_ABI
            )
            self._readers[key] = _ContractReader(contract, "token")
        return self._readers[key]

    async def decimals(self, token: str) -> int:
        if is_native(token):
            return 18
        return int(await self._reader(token)._call("decimals"))

    async def symbol(self, token: str) -> str:
        if is_native(token):
            return self._native_symbol
        return str(await self._reader(token)._call("symbol"))

    @_read_retry
    async def _native_balance(self, owner: str) -> int:
        try:
            return int(await self._w3.eth.get_balance(AsyncWeb3.to_checksum_address(owner)))
        except Exception as exc:
            self._log.warning("native_balance_failed", owner=owner, error=str(exc))
            raise classify_chain_error(exc) from exc

    async def balance_of(self, token: str, owner: str) -> int:
        if is_native(token):
            return await self._native_balance(owner)
        return int(
            await self._reader(token)._call("balanceOf", AsyncWeb3.to_checksum_address(owner))
        )

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        if is_native(token):
            raise ChainUnsupportedError("Native currency has no allowance")
        return int(
            await self._reader(token)._call(
                "allowance",
                AsyncWeb3.to_checksum_address(owner),
                AsyncWeb3.to_checksum_address(spender),
            )
        )

    def approve(self, token: str, spender: str, amount: int, *, label: str = "") -> Call:
        if is_native(token):
            raise ChainUnsupportedError("Native currency cannot be approved")
        contract = self._reader(token)._contract
        return Call(
            target=contract.address,
            data=contract.encode_abi(
                "approve", args=[AsyncWeb3.to_checksum_address(spender), amount]
            ),
            kind=CallKind.APPROVE,
            label=label or "approve",
            token=token,
            spender=spender,
            amount=amount,
        )


# ── Quote oracle ───────────────────────────────────────────────────────


class RouterQuoteOracle(QuoteOracle, _ContractReader):
    """UniswapV2-style router: ``getAmountsOut`` quotes, exact-in swaps.

    The native sentinel is swapped for the wrapped native token in paths.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        router: str,
        *,
        wrapped_native: str,
        deadline_secs: int = 1200,
    ) -> None:
        contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(router), abi=ROUTER_ABI)
        _ContractReader.__init__(self, contract, "router")
        self._wrapped_native = AsyncWeb3.to_checksum_address(wrapped_native)
        self._deadline_secs = deadline_secs

    @property
    def spender(self) -> str:
        return self._contract.address

    def _path(self, token_in: str, token_out: str) -> list[str]:
        return [
            self._wrapped_native if is_native(t) else AsyncWeb3.to_checksum_address(t)
            for t in (token_in, token_out)
        ]

    async def quote(self, amount_in: int, token_in: str, token_out: str) -> int:
        path = self._path(token_in, token_out)
        if same_address(path[0], path[1]):
            return amount_in
        amounts = await self._call("getAmountsOut", amount_in, path)
        return int(amounts[-1])

    def swap(
        self,
        amount_in: int,
        min_out: int,
        token_in: str,
        token_out: str,
        recipient: str,
        *,
        label: str = "",
    ) -> Call:
        if is_native(token_out):
            raise ChainUnsupportedError("Swaps into native currency are not supported")
        path = self._path(token_in, token_out)
        deadline = int(time.time()) + self._deadline_secs
        to = AsyncWeb3.to_checksum_address(recipient)
        if is_native(token_in):
            data = self._contract.encode_abi(
                "swapExactETHForTokens", args=[min_out, path, to, deadline]
            )
            value, spends = amount_in, ()
        else:
            data = self._contract.encode_abi(
                "swapExactTokensForTokens", args=[amount_in, min_out, path, to, deadline]
            )
            value, spends = 0, (token_in,)
        return Call(
            target=self.spender,
            value=value,
            data=data,
            kind=CallKind.SWAP,
            label=label or "swap",
            spends=spends,
            token=token_out,
            amount=amount_in,
        )


# ── Connection ─────────────────────────────────────────────────────────


class ChainClient:
    """Owns the AsyncWeb3 connection and hands out contract wrappers."""

    def __init__(
        self,
        cfg: ChainConfig,
        w3: AsyncWeb3 | None = None,
        *,
        swap_deadline_secs: int = 1200,
    ) -> None:
        self._cfg = cfg
        self._swap_deadline_secs = swap_deadline_secs
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(cfg.rpc_url))
        self._tokens = Web3TokenGateway(self._w3, native_symbol=cfg.native_symbol)
        self._log = log.bind(client="chain", network=cfg.network.value)

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    async def verify_network(self) -> int:
        """Check the node is on the configured chain.  Returns the chain id."""
        try:
            chain_id = int(await self._w3.eth.chain_id)
        except Exception as exc:
            self._log.error("chain_id_failed", error=str(exc))
            raise classify_chain_error(exc) from exc
        if chain_id != self._cfg.chain_id:
            raise ConfigError(
                f"Connected to chain {chain_id}, but network "
                f"{self._cfg.network.value!r} expects {self._cfg.chain_id}"
            )
        self._log.info("network_verified", chain_id=chain_id)
        return chain_id

    def bundle(self, address: str) -> Web3BundleLedger:
        return Web3BundleLedger(self._w3, address)

    def factory(self) -> Web3BundleFactory:
        return Web3BundleFactory(self._w3, self._cfg.bundle_factory)

    def tokens(self) -> Web3TokenGateway:
        return self._tokens

    def oracle(self) -> RouterQuoteOracle | None:
        """Router-backed oracle, or ``None`` when no router is configured."""
        if is_native(self._cfg.router):
            return None
        return RouterQuoteOracle(
            self._w3,
            self._cfg.router,
            wrapped_native=self._cfg.wrapped_native,
            deadline_secs=self._swap_deadline_secs,
        )

    async def close(self) -> None:
        await self._w3.provider.disconnect()
