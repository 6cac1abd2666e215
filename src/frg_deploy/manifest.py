"""
The project's deployment manifest: networks, test-runner options,
compiler settings, plugins and API keys.

Secrets never appear here. Remote networks name the environment
variables their mnemonic and endpoint are read from, and those are
only resolved when a network's provider is built.
"""

from typing import Optional

from frg_deploy.config import DeployConfig
from frg_deploy.networks import get_shared_network, load_shared_networks

MNEMONIC_ENV = "MNEMONIC"
ETHERSCAN_API_KEY_ENV = "ETHERSCAN_API_KEY"

# NOTE: BSC and Matic use public RPC endpoints, not environment variables.
BSC_RPC_URL = "https://bsc-dataseed1.binance.org"
MATIC_RPC_URL = "https://rpc-mainnet.matic.network"

SHARED_NETWORK_NAMES = ("ganacheUnitTest", "gethUnitTest", "testrpcCoverage")
VERIFY_PLUGIN = "truffle-plugin-verify"


def _provider(
    address_index: int,
    num_addresses: int,
    endpoint_env: Optional[str] = None,
    endpoint: Optional[str] = None,
) -> dict:
    return {
        "mnemonic_env": MNEMONIC_ENV,
        "endpoint_env": endpoint_env,
        "endpoint": endpoint,
        "address_index": address_index,
        "num_addresses": num_addresses,
    }


REMOTE_NETWORKS: dict[str, dict] = {
    "rinkeby": {
        "provider": _provider(1, 2, endpoint_env="RINKEBY_PROVIDER"),
        "network_id": 4,
        "gas": 6500000,
        "gasPrice": 2000000000,
    },
    "ropsten": {
        "provider": _provider(1, 2, endpoint_env="ROPSTEN_PROVIDER"),
        "network_id": 3,
        "gas": 3500000,
        "gasPrice": 100000000000,
    },
    "bsc": {
        "provider": _provider(16, 19, endpoint=BSC_RPC_URL),
        "network_id": 56,
        "confirmations": 10,
        "timeoutBlocks": 200,
        "skipDryRun": True,
    },
    "mainnet": {
        "ref": "mainnet-prod",
        "network_id": 1,
        "provider": _provider(16, 19, endpoint_env="MAINNET_PROVIDER"),
        "gas": 6500000,
        "gasPrice": 140000000000,
    },
    "matic": {
        "provider": _provider(1, 2, endpoint=MATIC_RPC_URL),
        "network_id": 137,
        "gas": 7000000,
        "gasPrice": 10000000000,  # 10 gwei
        "skipDryRun": True,
    },
}

MANIFEST: dict = {
    "mocha": {
        "enableTimeouts": False,
        "reporter": "eth-gas-reporter",
        "reporterOptions": {"currency": "USD"},
    },
    "compilers": {
        "solc": {
            "version": "0.5.0",
            "settings": {"optimizer": {"enabled": True, "runs": 200}},
        },
    },
    "plugins": [VERIFY_PLUGIN],
    "api_keys": {"etherscan": ETHERSCAN_API_KEY_ENV},
}


def build_manifest(shared: Optional[dict[str, dict]] = None) -> DeployConfig:
    """
    Build the deployment config.

    Args:
        shared (Optional[dict[str, dict]]): The shared network parameters
          the local test networks come from. Defaults to
          :func:`~frg_deploy.networks.load_shared_networks`.

    Returns:
        :class:`~frg_deploy.config.DeployConfig`
    """
    shared = load_shared_networks() if shared is None else shared
    networks = {name: get_shared_network(shared, name) for name in SHARED_NETWORK_NAMES}
    networks.update(REMOTE_NETWORKS)
    return DeployConfig.model_validate({**MANIFEST, "networks": networks})
