"""Human-readable ABI signatures.

Contract methods and events are declared the way the dApp declares them::

    "function userDeposits(address user, address token) view returns (uint256 amount, uint256 timestamp)"
    "event Deposit(address indexed user, address indexed tokenAddress, uint256 amount)"

Parameter names are kept so decoded results can be addressed by name; tuple
types such as ``(address,uint256)[]`` are passed to eth-abi unchanged.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_bytes,
    to_int,
)

_FUNCTION_RE = re.compile(r"^\s*function\s+(\w+)\s*\(")
_EVENT_RE = re.compile(r"^\s*event\s+(\w+)\s*\(")


def decode_quantity(value: str | int | None) -> int:
    """JSON-RPC quantity (hex string) as an int; missing fields read as 0."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return to_int(hexstr=value)


@dataclass(frozen=True)
class Param:
    type: str
    name: str = ""
    indexed: bool = False


def _closing_paren(text: str, start: int) -> int:
    """Index of the parenthesis closing the one at ``start``."""
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise ValueError(f"Unbalanced parentheses in {text!r}")


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested inside parentheses."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def _canonical_type(raw_type: str) -> str:
    """Strip parameter names from nested tuple components."""
    raw_type = raw_type.strip()
    if not raw_type.startswith("("):
        return raw_type
    end = _closing_paren(raw_type, 0)
    inner = ",".join(parse_param(p).type for p in _split_top_level(raw_type[1:end]))
    return f"({inner}){raw_type[end + 1:].strip()}"


def parse_param(text: str) -> Param:
    """Parse ``"address indexed user"`` or ``"(address a, uint256 b)[] xs"``."""
    text = text.strip()
    if text.startswith("("):
        end = _closing_paren(text, 0)
        suffix_match = re.match(r"((?:\[\d*\])*)", text[end + 1:])
        suffix = suffix_match.group(1) if suffix_match else ""
        type_str = _canonical_type(text[: end + 1 + len(suffix)])
        rest = text[end + 1 + len(suffix):].split()
    else:
        tokens = text.split()
        type_str = tokens[0]
        rest = tokens[1:]
    if type_str == "uint":
        type_str = "uint256"
    elif type_str == "int":
        type_str = "int256"
    indexed = "indexed" in rest
    names = [t for t in rest if t not in ("indexed", "memory", "calldata")]
    return Param(type=type_str, name=names[0] if names else "", indexed=indexed)


def _parse_params(text: str) -> tuple[Param, ...]:
    return tuple(parse_param(p) for p in _split_top_level(text))


@dataclass(frozen=True)
class ContractMethod:
    """A contract function parsed from its human-readable signature."""

    name: str
    inputs: tuple[Param, ...]
    outputs: tuple[Param, ...]
    mutability: str = "nonpayable"

    @classmethod
    def parse(cls, signature: str) -> "ContractMethod":
        match = _FUNCTION_RE.match(signature)
        if not match:
            raise ValueError(f"Not a function signature: {signature!r}")
        open_idx = match.end() - 1
        close_idx = _closing_paren(signature, open_idx)
        inputs = _parse_params(signature[open_idx + 1:close_idx])

        tail = signature[close_idx + 1:]
        outputs: tuple[Param, ...] = ()
        returns_idx = tail.find("returns")
        if returns_idx != -1:
            ret_open = tail.index("(", returns_idx)
            ret_close = _closing_paren(tail, ret_open)
            outputs = _parse_params(tail[ret_open + 1:ret_close])
            tail = tail[:returns_idx]

        mutability = "nonpayable"
        for word in ("view", "pure", "payable"):
            if re.search(rf"\b{word}\b", tail):
                mutability = word
                break
        return cls(name=match.group(1), inputs=inputs, outputs=outputs, mutability=mutability)

    @property
    def input_types(self) -> list[str]:
        return [p.type for p in self.inputs]

    @property
    def output_types(self) -> list[str]:
        return [p.type for p in self.outputs]

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.canonical)

    @property
    def is_read_only(self) -> bool:
        return self.mutability in ("view", "pure")

    def encode_call(self, *args: Any) -> str:
        """Calldata as a 0x-prefixed hex string."""
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.name} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        return "0x" + (self.selector + encode(self.input_types, list(args))).hex()

    def decode_result(self, data: str | bytes) -> Any:
        """Decode return data: single value for one output, tuple otherwise."""
        raw = to_bytes(hexstr=data) if isinstance(data, str) else data
        if not self.outputs:
            return None
        values = decode(self.output_types, raw)
        if len(values) == 1:
            return values[0]
        return values


@dataclass(frozen=True)
class ContractEventSignature:
    """A contract event parsed from its human-readable signature."""

    name: str
    inputs: tuple[Param, ...]

    @classmethod
    def parse(cls, signature: str) -> "ContractEventSignature":
        match = _EVENT_RE.match(signature)
        if not match:
            raise ValueError(f"Not an event signature: {signature!r}")
        open_idx = match.end() - 1
        close_idx = _closing_paren(signature, open_idx)
        return cls(name=match.group(1), inputs=_parse_params(signature[open_idx + 1:close_idx]))

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def topic(self) -> str:
        return "0x" + event_signature_to_log_topic(self.canonical).hex()

    def decode_log(self, log: dict[str, Any]) -> dict[str, Any]:
        """Decode a raw ``eth_getLogs`` entry into a name → value mapping."""
        topics = log.get("topics", [])[1:]
        indexed = [p for p in self.inputs if p.indexed]
        plain = [p for p in self.inputs if not p.indexed]

        args: dict[str, Any] = {}
        for param, topic in zip(indexed, topics):
            (args[param.name],) = decode([param.type], to_bytes(hexstr=topic))

        data = log.get("data", "0x")
        if plain:
            values = decode([p.type for p in plain], to_bytes(hexstr=data))
            for param, value in zip(plain, values):
                args[param.name] = value
        return args
