"""Client configuration passed explicitly into every component."""

from __future__ import annotations

import os
from dataclasses import dataclass

from filwallet.address import NETWORK_PREFIXES
from filwallet.errors import InvalidInput
from filwallet.shared.network import TimeoutConfig
from filwallet.shared.validation import AmountValidator

DEFAULT_RPC_ADDR = "https://api.node.glif.io/rpc/v1"
DEFAULT_MAX_FEE = 7 * 10**16  # 0.07 FIL, the Lotus default
DEFAULT_EXPLORER = "https://filfox.info/en/message/"


@dataclass
class ConfirmationConfig:
    poll_interval: float = 30.0
    max_attempts: int = 60

    def __post_init__(self):
        if self.poll_interval < 0:
            raise InvalidInput("poll_interval must not be negative")
        if self.max_attempts < 1:
            raise InvalidInput("max_attempts must be at least 1")


@dataclass
class ClientConfig:
    rpc_addr: str = DEFAULT_RPC_ADDR
    token: str | None = None
    network: str = "mainnet"
    max_fee: int = DEFAULT_MAX_FEE
    explorer_url: str = DEFAULT_EXPLORER
    timeout_config: TimeoutConfig | None = None
    confirmation: ConfirmationConfig | None = None

    def __post_init__(self):
        if self.network not in NETWORK_PREFIXES:
            raise InvalidInput(f"unknown network: {self.network}")
        if self.max_fee < 0:
            raise InvalidInput("max_fee must not be negative")
        if self.timeout_config is None:
            self.timeout_config = TimeoutConfig()
        if self.confirmation is None:
            self.confirmation = ConfirmationConfig()

    @property
    def address_prefix(self) -> str:
        return NETWORK_PREFIXES[self.network]

    @classmethod
    def from_environment(cls) -> "ClientConfig":
        max_fee = DEFAULT_MAX_FEE
        env_max_fee = os.getenv("FIL_WALLET_MAX_FEE")
        if env_max_fee:
            result = AmountValidator.parse_fil(env_max_fee)
            if not result.is_valid:
                raise InvalidInput(f"FIL_WALLET_MAX_FEE: {result.error_message}")
            max_fee = result.normalized_value

        return cls(
            rpc_addr=os.getenv("FIL_WALLET_RPC_ADDR", DEFAULT_RPC_ADDR),
            token=os.getenv("FIL_WALLET_TOKEN") or None,
            network=os.getenv("FIL_WALLET_NETWORK", "mainnet").lower(),
            max_fee=max_fee,
            explorer_url=os.getenv("FIL_WALLET_EXPLORER", DEFAULT_EXPLORER),
        )
