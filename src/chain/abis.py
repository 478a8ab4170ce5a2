"""ABI fragments for the contracts the orchestrator talks to."""

from __future__ import annotations

from typing import Any


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[str] | list[dict[str, Any]],
    *,
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [
            o if isinstance(o, dict) else {"name": "", "type": o} for o in outputs
        ],
    }


_COMPONENT_TUPLE = {
    "name": "",
    "type": "tuple[]",
    "components": [
        {"name": "token", "type": "address"},
        {"name": "weight", "type": "uint256"},
        {"name": "ctype", "type": "uint8"},
        {"name": "islandId", "type": "uint256"},
    ],
}

BUNDLE_ABI: list[dict[str, Any]] = [
    _fn("name", [], ["string"]),
    _fn("symbol", [], ["string"]),
    _fn("totalSupply", [], ["uint256"]),
    _fn("balanceOf", [("account", "address")], ["uint256"]),
    _fn("nav", [], ["uint256"]),
    _fn("creator", [], ["address"]),
    _fn("creationUnit", [], ["uint256"]),
    _fn("getComponents", [], [_COMPONENT_TUPLE]),
    _fn("getComponentBalances", [], ["uint256[]"]),
    _fn("getRequiredAmounts", [("shares", "uint256")], ["uint256[]"]),
    _fn("getRedeemAmounts", [("shares", "uint256")], ["uint256[]"]),
    _fn("mintExactBasket", [("shares", "uint256")], [], mutability="nonpayable"),
    _fn(
        "mintFromSingle",
        [("inputToken", "address"), ("inputAmount", "uint256"), ("minShares", "uint256")],
        [],
        mutability="payable",
    ),
    _fn("redeemForBasket", [("shares", "uint256")], [], mutability="nonpayable"),
    _fn(
        "redeemForSingle",
        [("shares", "uint256"), ("outputToken", "address"), ("minOut", "uint256")],
        [],
        mutability="nonpayable",
    ),
]

FACTORY_ABI: list[dict[str, Any]] = [
    _fn("getAllBundles", [], ["address[]"]),
    _fn("getCreatorBundles", [("creator", "address")], ["address[]"]),
]

ERC20_ABI: list[dict[str, Any]] = [
    _fn("decimals", [], ["uint8"]),
    _fn("symbol", [], ["string"]),
    _fn("balanceOf", [("account", "address")], ["uint256"]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"]),
    _fn(
        "approve",
        [("spender", "address"), ("amount", "uint256")],
        ["bool"],
        mutability="nonpayable",
    ),
]

ROUTER_ABI: list[dict[str, Any]] = [
    _fn("getAmountsOut", [("amountIn", "uint256"), ("path", "address[]")], ["uint256[]"]),
    _fn(
        "swapExactTokensForTokens",
        [
            ("amountIn", "uint256"),
            ("amountOutMin", "uint256"),
            ("path", "address[]"),
            ("to", "address"),
            ("deadline", "uint256"),
        ],
        ["uint256[]"],
        mutability="nonpayable",
    ),
    _fn(
        "swapExactETHForTokens",
        [
            ("amountOutMin", "uint256"),
            ("path", "address[]"),
            ("to", "address"),
            ("deadline", "uint256"),
        ],
        ["uint256[]"],
        mutability="payable",
    ),
]
