from frg_deploy.config import CONFIG_FILE_NAME, DeployConfig, load_config, merge_configs
from frg_deploy.exceptions import (
    ConfigError,
    FrgDeployException,
    MissingCredentialError,
    NetworkNotFoundError,
    ProviderError,
)
from frg_deploy.logging import logger
from frg_deploy.manifest import build_manifest
from frg_deploy.networks import NetworkEntry, NetworkTable, ProviderSpec, load_shared_networks
from frg_deploy.providers import ConnectionBuilder, HDWalletConnectionBuilder, HDWalletProvider
from frg_deploy.secrets import EnvironmentSecrets, load_secrets

__all__ = [
    "build_manifest",
    "CONFIG_FILE_NAME",
    "ConfigError",
    "ConnectionBuilder",
    "DeployConfig",
    "EnvironmentSecrets",
    "FrgDeployException",
    "HDWalletConnectionBuilder",
    "HDWalletProvider",
    "load_config",
    "load_secrets",
    "load_shared_networks",
    "logger",
    "merge_configs",
    "MissingCredentialError",
    "NetworkEntry",
    "NetworkNotFoundError",
    "NetworkTable",
    "ProviderError",
    "ProviderSpec",
]
