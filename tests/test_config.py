import pytest

from filwallet.config import (
    DEFAULT_MAX_FEE,
    DEFAULT_RPC_ADDR,
    ClientConfig,
    ConfirmationConfig,
)
from filwallet.errors import InvalidInput
from filwallet.shared.network import TimeoutConfig


class TestClientConfig:
    def test_defaults(self):
        config = ClientConfig()
        assert config.rpc_addr == DEFAULT_RPC_ADDR
        assert config.token is None
        assert config.max_fee == DEFAULT_MAX_FEE
        assert config.address_prefix == "f"
        assert isinstance(config.timeout_config, TimeoutConfig)
        assert isinstance(config.confirmation, ConfirmationConfig)

    def test_testnet_prefix(self):
        assert ClientConfig(network="testnet").address_prefix == "t"

    def test_unknown_network(self):
        with pytest.raises(InvalidInput):
            ClientConfig(network="devnet")

    def test_negative_max_fee(self):
        with pytest.raises(InvalidInput):
            ClientConfig(max_fee=-1)


class TestFromEnvironment:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("FIL_WALLET_RPC_ADDR", "http://127.0.0.1:1234/rpc/v1")
        monkeypatch.setenv("FIL_WALLET_TOKEN", "secret")
        monkeypatch.setenv("FIL_WALLET_NETWORK", "TESTNET")
        monkeypatch.setenv("FIL_WALLET_MAX_FEE", "0.5")

        config = ClientConfig.from_environment()

        assert config.rpc_addr == "http://127.0.0.1:1234/rpc/v1"
        assert config.token == "secret"
        assert config.network == "testnet"
        assert config.max_fee == 5 * 10**17

    def test_unset_environment_uses_defaults(self, monkeypatch):
        for name in (
            "FIL_WALLET_RPC_ADDR",
            "FIL_WALLET_TOKEN",
            "FIL_WALLET_NETWORK",
            "FIL_WALLET_MAX_FEE",
            "FIL_WALLET_EXPLORER",
        ):
            monkeypatch.delenv(name, raising=False)

        config = ClientConfig.from_environment()

        assert config.rpc_addr == DEFAULT_RPC_ADDR
        assert config.token is None
        assert config.max_fee == DEFAULT_MAX_FEE

    def test_invalid_max_fee(self, monkeypatch):
        monkeypatch.setenv("FIL_WALLET_MAX_FEE", "lots")
        with pytest.raises(InvalidInput, match="FIL_WALLET_MAX_FEE"):
            ClientConfig.from_environment()
