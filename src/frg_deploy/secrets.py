import os
from typing import Optional, Union

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from frg_deploy.exceptions import MissingCredentialError

DOTENV_FILE_NAME = ".env"


class EnvironmentSecrets(BaseSettings):
    """
    Secrets and endpoints sourced from the process environment
    (and a ``.env`` file in the working directory, when present).
    Load once at start-up with :func:`~frg_deploy.secrets.load_secrets`
    and pass the instance to whatever needs network access.
    """

    mnemonic: Optional[SecretStr] = None
    rinkeby_provider: Optional[str] = None
    ropsten_provider: Optional[str] = None
    mainnet_provider: Optional[str] = None
    etherscan_api_key: Optional[SecretStr] = None

    model_config = SettingsConfigDict(
        env_file=DOTENV_FILE_NAME,
        env_file_encoding="utf8",
        case_sensitive=False,
        extra="ignore",
    )

    def get(self, env_name: str) -> Optional[str]:
        """
        Look up an environment-sourced value by its variable name,
        e.g. ``"MNEMONIC"``. Names without a declared field fall
        back to the process environment.
        """
        field_name = env_name.lower()
        if field_name in type(self).model_fields:
            value: Union[SecretStr, str, None] = getattr(self, field_name)
        else:
            value = os.environ.get(env_name)

        if isinstance(value, SecretStr):
            value = value.get_secret_value()

        # NOTE: Empty strings count as unset.
        return value or None

    def require(self, env_name: str, purpose: Optional[str] = None) -> str:
        """
        Get a value that must be set.

        Raises:
            :class:`~frg_deploy.exceptions.MissingCredentialError`: When
              the variable is unset or empty.
        """
        if value := self.get(env_name):
            return value

        raise MissingCredentialError(env_name, purpose=purpose)


def load_secrets(env_file: Optional[str] = DOTENV_FILE_NAME) -> EnvironmentSecrets:
    """
    Populate :class:`~frg_deploy.secrets.EnvironmentSecrets` from the
    environment. Pass ``env_file=None`` to skip reading a ``.env`` file.
    """
    return EnvironmentSecrets(_env_file=env_file)  # type: ignore[call-arg]
