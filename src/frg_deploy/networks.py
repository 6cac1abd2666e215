import json
import os
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

from frg_deploy.exceptions import ConfigError, NetworkNotFoundError
from frg_deploy.logging import logger
from frg_deploy.providers import DEFAULT_HD_PATH, HDWalletConnectionBuilder

if TYPE_CHECKING:
    from frg_deploy.secrets import EnvironmentSecrets

SHARED_NETWORKS_ENV = "FRG_NETWORK_CONFIG"
SHARED_NETWORKS_PATH = Path(__file__).parent / "data" / "network_config.json"
ANY_CHAIN_ID = "*"


def _to_int(value: Any) -> Any:
    # Manifests often carry hex quantities, e.g. "0xfffffffffff".
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)

    return value


class ProviderSpec(BaseModel):
    """
    Describes how to build a wallet provider for a network:
    where the mnemonic and endpoint come from and which
    derived addresses to manage.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mnemonic_env: str = "MNEMONIC"
    """
    The environment variable holding the secret recovery phrase.
    """

    endpoint_env: Optional[str] = None
    """
    The environment variable holding the RPC URL.
    """

    endpoint: Optional[str] = None
    """
    A literal RPC URL, used when ``endpoint_env`` is not set.
    """

    address_index: int = Field(default=0, ge=0)
    """
    The first derived address index to manage.
    """

    num_addresses: int = Field(default=1, ge=1)
    """
    How many consecutive derived addresses to manage.
    """

    hd_path: str = DEFAULT_HD_PATH

    @model_validator(mode="after")
    def validate_endpoint_source(self):
        if bool(self.endpoint_env) == bool(self.endpoint):
            raise ValueError("Provide exactly one of 'endpoint_env' or 'endpoint'.")

        return self

    @property
    def address_range(self) -> range:
        return range(self.address_index, self.address_index + self.num_addresses)


class NetworkEntry(BaseModel):
    """
    How to reach and transact against one blockchain network.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    chain_id: Optional[int] = Field(alias="network_id")
    """
    The chain ID. ``None`` (``"*"`` in config files) matches any chain.
    """

    provider: Optional[ProviderSpec] = None
    """
    Remote provider settings. When absent, the local ``host`` and ``port`` are used.
    """

    host: Optional[str] = None
    port: Optional[int] = None

    gas: Optional[int] = None
    """
    The gas limit for deployment transactions.
    """

    gas_price: Optional[int] = Field(default=None, alias="gasPrice")
    """
    The gas price, in wei.
    """

    confirmations: Optional[int] = None
    timeout_blocks: Optional[int] = Field(default=None, alias="timeoutBlocks")
    skip_dry_run: Optional[bool] = Field(default=None, alias="skipDryRun")

    ref: Optional[str] = None
    """
    A free-form label for the deployment target, e.g. ``mainnet-prod``.
    """

    @field_validator("chain_id", mode="before")
    @classmethod
    def validate_chain_id(cls, value):
        if value == ANY_CHAIN_ID:
            return None

        return _to_int(value)

    @field_validator("gas", "gas_price", "port", "confirmations", "timeout_blocks", mode="before")
    @classmethod
    def validate_quantity(cls, value):
        return _to_int(value)

    @field_validator("gas", "gas_price", "confirmations", "timeout_blocks")
    @classmethod
    def validate_non_negative(cls, value):
        if value is not None and value < 0:
            raise ValueError("Must not be negative.")

        return value

    @model_validator(mode="after")
    def validate_endpoint(self):
        if self.provider is None and (self.host is None or self.port is None):
            raise ValueError("Networks without a provider need both 'host' and 'port'.")

        return self

    @property
    def is_local(self) -> bool:
        return self.provider is None

    @property
    def uri(self) -> str:
        """
        A printable location of the node. Environment-sourced endpoints
        show as ``$NAME`` so the URL itself is never revealed.
        """
        if self.provider is None:
            return f"http://{self.host}:{self.port}"
        elif self.provider.endpoint_env:
            return f"${self.provider.endpoint_env}"

        return self.provider.endpoint or ""

    def provider_factory(
        self, secrets: Optional["EnvironmentSecrets"] = None, name: str = ""
    ) -> Optional[HDWalletConnectionBuilder]:
        """
        Get the provider builder for this network. Nothing is resolved or
        contacted until the builder's ``build()`` is called.

        Args:
            secrets (Optional[:class:`~frg_deploy.secrets.EnvironmentSecrets`]):
              Pre-loaded secrets. Defaults to loading them at build time.
            name (str): The network's name, for messages.

        Returns:
            Optional[:class:`~frg_deploy.providers.HDWalletConnectionBuilder`]:
            ``None`` for local networks.
        """
        if self.provider is None:
            return None

        return HDWalletConnectionBuilder(
            self.provider,
            secrets=secrets,
            network_name=name,
            chain_id=self.chain_id,
            gas=self.gas,
            gas_price=self.gas_price,
        )


class NetworkTable(RootModel[dict[str, NetworkEntry]]):
    """
    Networks by name. Names are unique.
    """

    model_config = ConfigDict(frozen=True)

    def __getitem__(self, name: str) -> NetworkEntry:
        return self.get(name)

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, name: str) -> bool:
        return name in self.root

    @property
    def names(self) -> list[str]:
        return list(self.root)

    def items(self):
        return self.root.items()

    def get(self, name: str) -> NetworkEntry:
        """
        Get a network by name.

        Raises:
            :class:`~frg_deploy.exceptions.NetworkNotFoundError`: When there
              is no network with that name.
        """
        if name in self.root:
            return self.root[name]

        raise NetworkNotFoundError(name, options=self.names)

    @property
    def local_networks(self) -> dict[str, NetworkEntry]:
        return {n: e for n, e in self.root.items() if e.is_local}

    @property
    def remote_networks(self) -> dict[str, NetworkEntry]:
        return {n: e for n, e in self.root.items() if not e.is_local}

    def provider_factory(
        self, name: str, secrets: Optional["EnvironmentSecrets"] = None
    ) -> Optional[HDWalletConnectionBuilder]:
        return self.get(name).provider_factory(secrets=secrets, name=name)


def load_shared_networks(path: Optional[Union[Path, str]] = None) -> dict[str, dict]:
    """
    Load the shared network-parameters collection: a JSON mapping of
    network name to raw network settings.

    Args:
        path (Optional[Union[Path, str]]): The file to read. Defaults to
          ``$FRG_NETWORK_CONFIG`` and then the file bundled with this package.

    Returns:
        dict[str, dict]
    """
    if path is None:
        path = os.environ.get(SHARED_NETWORKS_ENV) or SHARED_NETWORKS_PATH

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Shared network config '{path}' does not exist.")

    try:
        data = json.loads(path.read_text(encoding="utf8"))
    except json.JSONDecodeError as err:
        raise ConfigError(f"Shared network config '{path}' is not valid JSON: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Shared network config '{path}' must be a JSON object.")

    logger.debug(f"Loaded shared networks from '{path}': {', '.join(sorted(data))}.")
    return data


def get_shared_network(shared: dict[str, dict], name: str) -> dict:
    if name not in shared:
        raise ConfigError(f"Shared network config is missing '{name}'.")

    return shared[name]
