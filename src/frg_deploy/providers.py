from abc import ABC, abstractmethod
from collections import namedtuple
from typing import TYPE_CHECKING, Any, Optional

from eth_account import Account
from eth_account.hdaccount import HDPath
from eth_account.hdaccount.mnemonic import Mnemonic
from eth_utils import to_hex
from pydantic import BaseModel, Field, SecretStr, field_validator
from web3 import HTTPProvider, Web3
from web3.middleware import geth_poa_middleware

from frg_deploy.exceptions import ProviderError, ProviderNotConnectedError
from frg_deploy.logging import logger, sanitize_url

if TYPE_CHECKING:
    from frg_deploy.networks import ProviderSpec
    from frg_deploy.secrets import EnvironmentSecrets

DEFAULT_HD_PATH = "m/44'/60'/0'/0"
# Rinkeby, BSC and Polygon blocks carry extra-data the default web3 formatters reject.
POA_CHAIN_IDS = (4, 56, 137)
DerivedAccount = namedtuple("DerivedAccount", ("index", "address", "private_key"))


def generate_accounts(
    mnemonic: str,
    number_of_accounts: int = 1,
    hd_path: str = DEFAULT_HD_PATH,
    start_index: int = 0,
) -> list[DerivedAccount]:
    """
    Derive accounts from the given mnemonic over the index range
    ``[start_index, start_index + number_of_accounts)``.

    Args:
        mnemonic (str): Mnemonic phrase or seed words.
        number_of_accounts (int): Number of accounts. Defaults to ``1``.
        hd_path (str): Hard Wallets/HD Keys derivation path format.
          Defaults to ``"m/44'/60'/0'/0"``.
        start_index (int): The index to start from in the path. Defaults
          to 0.

    Returns:
        list[:class:`~frg_deploy.providers.DerivedAccount`]
    """
    seed = Mnemonic.to_seed(mnemonic)
    hd_path_format = (
        hd_path if "{}" in hd_path or "{0}" in hd_path else f"{hd_path.rstrip('/')}/{{}}"
    )
    return [
        _derive_account(hd_path_format, i, seed)
        for i in range(start_index, start_index + number_of_accounts)
    ]


def _derive_account(hd_path: str, index: int, seed: bytes) -> DerivedAccount:
    private_key = to_hex(HDPath(hd_path.format(index)).derive(seed))
    return DerivedAccount(
        index=index,
        address=Account.from_key(private_key).address,
        private_key=private_key,
    )


class ConnectionSettings(BaseModel):
    """
    Everything needed to construct a provider, resolved from the
    environment. Never serialize this model; it carries the mnemonic.
    """

    mnemonic: SecretStr
    endpoint: str
    address_index: int = Field(default=0, ge=0)
    num_addresses: int = Field(default=1, ge=1)
    hd_path: str = DEFAULT_HD_PATH

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Endpoint must not be empty.")

        return value.strip()

    @field_validator("mnemonic")
    @classmethod
    def validate_mnemonic(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("Mnemonic must not be empty.")

        return value


class HDWalletProvider:
    """
    A connection handle that signs with accounts derived from a mnemonic
    and submits through an HTTP node. Constructing one performs no network
    I/O; the node is first contacted in :meth:`connect` or when a
    transaction is sent.
    """

    def __init__(
        self,
        settings: ConnectionSettings,
        network_name: str = "",
        chain_id: Optional[int] = None,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
    ):
        self.network_name = network_name
        self.chain_id = chain_id
        self.gas = gas
        self.gas_price = gas_price
        self.endpoint = settings.endpoint
        self._accounts = generate_accounts(
            settings.mnemonic.get_secret_value(),
            number_of_accounts=settings.num_addresses,
            hd_path=settings.hd_path,
            start_index=settings.address_index,
        )
        self._web3: Optional[Web3] = Web3(HTTPProvider(settings.endpoint))
        self._connected = False

    def __repr__(self) -> str:
        name = self.network_name or "custom"
        return f"<{type(self).__name__} {name} {sanitize_url(self.endpoint)}>"

    @property
    def web3(self) -> Web3:
        if self._web3 is None:
            raise ProviderNotConnectedError()

        return self._web3

    @property
    def addresses(self) -> list[str]:
        return [acct.address for acct in self._accounts]

    @property
    def default_sender(self) -> str:
        return self._accounts[0].address

    @property
    def is_connected(self) -> bool:
        return self._connected and self._web3 is not None and self._web3.is_connected()

    def connect(self):
        """
        Contact the node and make sure it serves the expected chain.

        Raises:
            :class:`~frg_deploy.exceptions.ProviderError`: When the node
              is unreachable or reports a different chain ID.
        """
        web3 = self.web3
        if not web3.is_connected():
            raise ProviderError(f"No node reachable at '{sanitize_url(self.endpoint)}'.")

        actual_chain_id = web3.eth.chain_id
        if self.chain_id is not None and actual_chain_id != self.chain_id:
            raise ProviderError(
                "HTTP Connection does not match expected chain ID. "
                f"Are you connected to '{self.network_name}'? "
                f"(expected {self.chain_id}, got {actual_chain_id})"
            )

        if actual_chain_id in POA_CHAIN_IDS and "poa" not in web3.middleware_onion:
            web3.middleware_onion.inject(geth_poa_middleware, name="poa", layer=0)

        self._connected = True
        logger.debug(f"Connected to '{self.network_name}' at {sanitize_url(self.endpoint)}.")

    def disconnect(self):
        self._web3 = None
        self._connected = False

    def _get_account(self, address: str) -> DerivedAccount:
        for acct in self._accounts:
            if acct.address.lower() == address.lower():
                return acct

        raise ProviderError(f"Address '{address}' is not managed by this provider.")

    def prepare_transaction(self, txn: dict) -> dict:
        """
        Fill in sender, chain ID and gas settings from the network entry
        where the transaction does not specify them.
        """
        prepared: dict[str, Any] = {**txn}
        prepared.setdefault("from", self.default_sender)
        if self.chain_id is not None:
            prepared.setdefault("chainId", self.chain_id)
        if self.gas is not None:
            prepared.setdefault("gas", self.gas)
        if self.gas_price is not None and "maxFeePerGas" not in prepared:
            prepared.setdefault("gasPrice", self.gas_price)

        return prepared

    def sign_transaction(self, txn: dict):
        """
        Sign the transaction with the derived key matching its ``from``
        address. ``nonce`` must be given or the node is asked for it.
        """
        prepared = self.prepare_transaction(txn)
        account = self._get_account(prepared.pop("from"))
        if "nonce" not in prepared:
            prepared["nonce"] = self.web3.eth.get_transaction_count(account.address)

        return Account.sign_transaction(prepared, account.private_key)

    def send_transaction(self, txn: dict) -> str:
        """
        Sign and submit the transaction.

        Returns:
            str: The transaction hash.
        """
        signed = self.sign_transaction(txn)
        try:
            txn_hash = self.web3.eth.send_raw_transaction(signed.rawTransaction)
        except ValueError as err:
            raise ProviderError(str(err)) from err

        return to_hex(txn_hash)


class ConnectionBuilder(ABC):
    """
    Builds a new connection handle on each call to :meth:`build`.
    """

    @abstractmethod
    def build(self) -> HDWalletProvider:
        """
        Construct a fresh provider.
        """

    def __call__(self) -> HDWalletProvider:
        return self.build()


class HDWalletConnectionBuilder(ConnectionBuilder):
    """
    Resolves the mnemonic and endpoint at :meth:`build` time, so the secrets
    only need to exist when the network is actually used.
    """

    def __init__(
        self,
        spec: "ProviderSpec",
        secrets: Optional["EnvironmentSecrets"] = None,
        network_name: str = "",
        chain_id: Optional[int] = None,
        gas: Optional[int] = None,
        gas_price: Optional[int] = None,
    ):
        self.spec = spec
        self._secrets = secrets
        self.network_name = network_name
        self.chain_id = chain_id
        self.gas = gas
        self.gas_price = gas_price

    @property
    def secrets(self) -> "EnvironmentSecrets":
        if self._secrets is None:
            from frg_deploy.secrets import load_secrets

            self._secrets = load_secrets()

        return self._secrets

    def resolve_settings(self) -> ConnectionSettings:
        purpose = f"network '{self.network_name}'" if self.network_name else None
        mnemonic = self.secrets.require(self.spec.mnemonic_env, purpose=purpose)
        if self.spec.endpoint_env:
            endpoint = self.secrets.require(self.spec.endpoint_env, purpose=purpose)
        else:
            endpoint = self.spec.endpoint or ""

        return ConnectionSettings(
            mnemonic=SecretStr(mnemonic),
            endpoint=endpoint,
            address_index=self.spec.address_index,
            num_addresses=self.spec.num_addresses,
            hd_path=self.spec.hd_path,
        )

    def build(self) -> HDWalletProvider:
        settings = self.resolve_settings()
        logger.debug(
            f"Building provider for '{self.network_name}' at {sanitize_url(settings.endpoint)} "
            f"(addresses {settings.address_index}..."
            f"{settings.address_index + settings.num_addresses - 1})."
        )
        return HDWalletProvider(
            settings,
            network_name=self.network_name,
            chain_id=self.chain_id,
            gas=self.gas,
            gas_price=self.gas_price,
        )
