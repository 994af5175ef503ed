"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest
from eth_abi import decode, encode
from eth_utils import to_bytes

from blockcoop.config import (
    AppConfig,
    ChainConfig,
    ContractsConfig,
    MessagesConfig,
    NotificationsConfig,
    PollingConfig,
    TelegramConfig,
    TokenConfig,
    WalletConfig,
)
from blockcoop.contracts import erc20, loan_manager, registry
from blockcoop.contracts.abi import ContractEventSignature, ContractMethod
from blockcoop.errors import RpcError
from blockcoop.models import TransactionReceipt

# Well-known development key (first Hardhat / Anvil account).
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

OTHER_ADDRESS = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
REGISTRY_ADDRESS = "0x1111111111111111111111111111111111111111"
LOAN_MANAGER_ADDRESS = "0x2222222222222222222222222222222222222222"
CUSD = "0x874069fa1eb16d44d622f2e0ca25eea172369bc1"
CELO = "0xf194afdf50b03e69bd7d057c1aa9e10c9954e4c9"
PRICE_FEED = "0x7a5f2f362c1c705d3e83ec86b5e4a2da19328f01"

WAD = 10**18


# ---------------------------------------------------------------------------
# Fake chain
# ---------------------------------------------------------------------------


def _known_methods() -> dict[bytes, ContractMethod]:
    methods: dict[bytes, ContractMethod] = {}
    for module in (registry, loan_manager, erc20):
        for value in vars(module).values():
            if isinstance(value, str) and value.startswith("function "):
                method = ContractMethod.parse(value)
                methods[method.selector] = method
    return methods


def make_log(
    signature: str, tx_hash: str, block_number: int = 100, **args: Any
) -> dict[str, Any]:
    """Raw ``eth_getLogs`` entry for ``signature`` with the given arguments."""
    event = ContractEventSignature.parse(signature)
    topics = [event.topic]
    plain_types: list[str] = []
    plain_values: list[Any] = []
    for param in event.inputs:
        if param.indexed:
            topics.append("0x" + encode([param.type], [args[param.name]]).hex())
        else:
            plain_types.append(param.type)
            plain_values.append(args[param.name])
    return {
        "address": REGISTRY_ADDRESS,
        "topics": topics,
        "data": "0x" + encode(plain_types, plain_values).hex(),
        "blockNumber": hex(block_number),
        "transactionHash": tx_hash,
    }


class FakeChain:
    """In-memory ChainClient: answers eth_call from registered handlers and
    records every transaction the wallet builds."""

    chain_id = 44787

    def __init__(self) -> None:
        self._methods = _known_methods()
        self._handlers: dict[bytes, Any] = {}
        self._send_hooks: dict[str, Callable[..., None]] = {}
        self._pending: tuple[str, str, tuple] | None = None
        self.sent: list[tuple[str, str, tuple]] = []
        self.reverts: dict[str, str] = {}
        self.logs: list[dict[str, Any]] = []
        self.block_number = 100
        self.receipt_status = 1
        self.receipts_pending = False

    def on(self, signature: str, result: Any) -> None:
        """Answer calls to ``signature`` with ``result``, a callable, or an exception."""
        self._handlers[ContractMethod.parse(signature).selector] = result

    def on_send(self, method_name: str, hook: Callable[..., None]) -> None:
        """Run ``hook(tx_hash, *args)`` when a ``method_name`` transaction is sent."""
        self._send_hooks[method_name] = hook

    def sent_names(self) -> list[str]:
        return [name for _, name, _ in self.sent]

    def _decode(self, data: str) -> tuple[ContractMethod, tuple]:
        raw = to_bytes(hexstr=data)
        method = self._methods[raw[:4]]
        return method, decode(method.input_types, raw[4:])

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        method, args = self._decode(data)
        if method.selector not in self._handlers:
            raise RpcError(f"execution reverted: no handler for {method.name}")
        result = self._handlers[method.selector]
        if callable(result):
            result = result(*args)
        if isinstance(result, Exception):
            raise result
        values = [result] if len(method.outputs) == 1 else list(result)
        return "0x" + encode(method.output_types, values).hex()

    async def get_block_number(self) -> int:
        return self.block_number

    async def get_logs(
        self,
        address: str,
        topics: list[Any],
        from_block: int,
        to_block: int | str = "latest",
    ) -> list[dict[str, Any]]:
        wanted = topics[0] if topics else None
        return [
            log
            for log in self.logs
            if int(log["blockNumber"], 16) >= from_block
            and (wanted is None or log["topics"][0] in wanted)
        ]

    async def get_transaction_count(self, address: str) -> int:
        return len(self.sent)

    async def get_gas_price(self) -> int:
        return 1_000_000_000

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        method, args = self._decode(tx["data"])
        if method.name in self.reverts:
            raise RpcError(f"execution reverted: {self.reverts[method.name]}")
        self._pending = (tx["to"], method.name, args)
        return 60_000

    async def send_raw_transaction(self, raw_tx: str) -> str:
        assert self._pending is not None
        self.sent.append(self._pending)
        to, name, args = self._pending
        self._pending = None
        tx_hash = "0x" + f"{len(self.sent):064x}"
        hook = self._send_hooks.get(name)
        if hook is not None:
            hook(tx_hash, *args)
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        if self.receipts_pending:
            return None
        return TransactionReceipt(
            transaction_hash=tx_hash,
            status=self.receipt_status,
            block_number=self.block_number,
            gas_used=50_000,
        )


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def fast_polling() -> PollingConfig:
    return PollingConfig(
        event_attempts=2,
        event_interval=0.001,
        deposit_timeout=0.005,
        deposit_interval=0.001,
        receipt_timeout=0.005,
        receipt_interval=0.001,
        refetch_delay=0.0,
    )


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig, fast_polling: PollingConfig
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        contracts=ContractsConfig(
            registry=REGISTRY_ADDRESS, loan_manager=LOAN_MANAGER_ADDRESS
        ),
        wallet=WalletConfig(private_key=TEST_PRIVATE_KEY, label="test-wallet"),
        tokens=(
            TokenConfig(name="Celo Dollar", symbol="cUSD", token_address=CUSD,
                        price_feed_address=PRICE_FEED),
            TokenConfig(name="Celo", symbol="CELO", token_address=CELO,
                        price_feed_address=PRICE_FEED),
        ),
        polling=fast_polling,
        messages=MessagesConfig(ttl_seconds=5.0),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


@pytest.fixture()
def tokens_info_result() -> tuple:
    """getTokensInfo result: cUSD at $1, CELO at $0.50."""
    return (
        [CUSD, CELO],
        ["Celo Dollar", "Celo"],
        ["cUSD", "CELO"],
        [18, 18],
        [WAD, WAD // 2],
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      name: Celo Alfajores
      chain_id: 44787
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    contracts:
      registry: "{REGISTRY_ADDRESS}"
      loan_manager: "{LOAN_MANAGER_ADDRESS}"
    wallet:
      address: "{TEST_ADDRESS}"
      label: test-wallet
    tokens:
      "44787":
        - name: Celo Dollar
          symbol: cUSD
          token_address: "{CUSD}"
          price_feed_address: "{PRICE_FEED}"
      "42220":
        - name: Celo
          symbol: CELO
          token_address: "0x471EcE3750Da237f93B8E339c536989b8978a438"
    polling:
      event_attempts: 3
      deposit_timeout: 5
    messages:
      ttl_seconds: 2.5
    watch:
      interval_seconds: 15
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
