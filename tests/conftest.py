import os

import pytest
from click.testing import CliRunner

from frg_deploy.logging import LogLevel, logger
from frg_deploy.manifest import build_manifest
from frg_deploy.secrets import EnvironmentSecrets

TEST_MNEMONIC = "test test test test test test test test test test test junk"
# Addresses derived from TEST_MNEMONIC at m/44'/60'/0'/0/{index}.
TEST_ADDRESSES = {
    0: "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    1: "0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    2: "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
}
TEST_ENDPOINT = "http://127.0.0.1:8545"
SECRET_ENV_VARS = (
    "MNEMONIC",
    "RINKEBY_PROVIDER",
    "ROPSTEN_PROVIDER",
    "MAINNET_PROVIDER",
    "ETHERSCAN_API_KEY",
    "FRG_NETWORK_CONFIG",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """
    Run every test without the caller's secrets and away from any
    ``.env`` or ``deploy-config.yaml`` in the working directory.
    """
    for name in SECRET_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    monkeypatch.chdir(tmp_path)


@pytest.fixture(scope="session", autouse=True)
def start_dir():
    return os.getcwd()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def manifest():
    return build_manifest()


@pytest.fixture
def secrets():
    return EnvironmentSecrets(
        _env_file=None,  # type: ignore[call-arg]
        mnemonic=TEST_MNEMONIC,
        rinkeby_provider=TEST_ENDPOINT,
        ropsten_provider=TEST_ENDPOINT,
        mainnet_provider=TEST_ENDPOINT,
        etherscan_api_key="TEST_ETHERSCAN_KEY",
    )


@pytest.fixture
def empty_secrets():
    return EnvironmentSecrets(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def env_secrets(monkeypatch):
    monkeypatch.setenv("MNEMONIC", TEST_MNEMONIC)
    monkeypatch.setenv("RINKEBY_PROVIDER", TEST_ENDPOINT)
    monkeypatch.setenv("ROPSTEN_PROVIDER", TEST_ENDPOINT)
    monkeypatch.setenv("MAINNET_PROVIDER", TEST_ENDPOINT)
    monkeypatch.setenv("ETHERSCAN_API_KEY", "TEST_ETHERSCAN_KEY")


@pytest.fixture
def debug_logs():
    with logger.at_level(LogLevel.DEBUG):
        yield


@pytest.fixture
def test_mnemonic():
    return TEST_MNEMONIC


@pytest.fixture
def test_addresses():
    return TEST_ADDRESSES


@pytest.fixture
def test_endpoint():
    return TEST_ENDPOINT
