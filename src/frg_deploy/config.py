import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union, get_args, get_origin

if sys.version_info.minor >= 11:
    # 3.11 or greater
    # NOTE: type-ignore is for when running mypy on python versions < 3.11
    import tomllib  # type: ignore[import-not-found]
else:
    import toml as tomllib  # type: ignore[no-redef]

import yaml
from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from frg_deploy.exceptions import ConfigError, MissingCredentialError
from frg_deploy.logging import logger
from frg_deploy.networks import NetworkEntry, NetworkTable

if TYPE_CHECKING:
    from frg_deploy.providers import HDWalletConnectionBuilder
    from frg_deploy.secrets import EnvironmentSecrets

CONFIG_FILE_NAME = "deploy-config.yaml"
PYPROJECT_TOOL_NAME = "frg-deploy"


class ReporterOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    currency: str = "USD"
    """
    The fiat currency gas costs are reported in.
    """


class TestRunnerConfig(BaseModel):
    """
    Options for the test runner and its gas reporter.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    enable_timeouts: bool = Field(default=False, alias="enableTimeouts")
    reporter: str = "eth-gas-reporter"
    reporter_options: ReporterOptions = Field(
        default_factory=ReporterOptions, alias="reporterOptions"
    )


class OptimizerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    runs: int = Field(default=200, ge=0)


class CompilerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)


class CompilerConfig(BaseModel):
    """
    The Solidity compiler pin and optimizer settings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = "0.5.0"
    settings: CompilerSettings = Field(default_factory=CompilerSettings)

    @property
    def language_version(self) -> str:
        return self.version

    @property
    def optimizer_enabled(self) -> bool:
        return self.settings.optimizer.enabled

    @property
    def optimizer_runs(self) -> int:
        return self.settings.optimizer.runs

    def to_solc_settings(self) -> dict:
        """
        The ``settings`` section of a solc standard-JSON input.
        """
        return self.settings.model_dump(mode="json", by_alias=True)


class CompilersConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    solc: CompilerConfig = Field(default_factory=CompilerConfig)


class DeployConfig(BaseSettings):
    """
    The top-level deployment config.
    """

    model_config = SettingsConfigDict(extra="forbid", populate_by_name=True)

    networks: NetworkTable = Field(default_factory=lambda: NetworkTable({}))
    mocha: TestRunnerConfig = Field(default_factory=TestRunnerConfig)
    compilers: CompilersConfig = Field(default_factory=CompilersConfig)

    plugins: list[str] = []
    """
    Names of extension modules to load.
    """

    api_keys: dict[str, str] = {}
    """
    Service name to the environment variable holding its API key.
    Keys are looked up when requested, never stored.
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Values only come from the manifest and config files; secrets
        # are handled by `EnvironmentSecrets`.
        return (init_settings,)

    @property
    def test_runner(self) -> TestRunnerConfig:
        return self.mocha

    @property
    def compiler(self) -> CompilerConfig:
        return self.compilers.solc

    def get_network(self, name: str) -> NetworkEntry:
        """
        Get the network with the given name.

        Raises:
            :class:`~frg_deploy.exceptions.NetworkNotFoundError`: When
              the network is not configured.
        """
        return self.networks.get(name)

    def provider_factory(
        self, name: str, secrets: Optional["EnvironmentSecrets"] = None
    ) -> Optional["HDWalletConnectionBuilder"]:
        return self.networks.provider_factory(name, secrets=secrets)

    def get_api_key(self, service: str, secrets: Optional["EnvironmentSecrets"] = None) -> str:
        """
        Resolve the API key for an external service from the environment.

        Raises:
            :class:`~frg_deploy.exceptions.ConfigError`: When the service has
              no configured key.
            :class:`~frg_deploy.exceptions.MissingCredentialError`: When the
              key's environment variable is unset.
        """
        if service not in self.api_keys:
            raise ConfigError(f"No API key configured for '{service}'.")

        if secrets is None:
            from frg_deploy.secrets import load_secrets

            secrets = load_secrets()

        env_name = self.api_keys[service]
        try:
            return secrets.require(env_name, purpose=f"the '{service}' API")
        except MissingCredentialError:
            logger.debug(f"API key for '{service}' not found in '{env_name}'.")
            raise

    def __repr__(self) -> str:
        return f"<{CONFIG_FILE_NAME}>"

    def __str__(self) -> str:
        data = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude_unset=True,
            exclude_defaults=True,
        )
        return yaml.safe_dump(data)

    @classmethod
    def validate_file(cls, path: Path, **overrides) -> "DeployConfig":
        """
        Create a DeployConfig using the given path.
        Supports ``pyproject.toml`` and ``deploy-config.[.yml|.yaml|.json]`` files.

        Raises:
            :class:`~frg_deploy.exceptions.ConfigError`: When given an unknown file type
              or the data is invalid.

        Args:
            path (Path): The path to the file.
            **overrides: Config overrides.

        Returns:
            :class:`~frg_deploy.config.DeployConfig`
        """
        data = merge_configs(read_config_file(path, must_exist=True), overrides)
        try:
            return cls.model_validate(data)
        except ValidationError as err:
            raise ConfigError(f"'{path}' is invalid!\n{err}") from err

    def write_to_disk(self, destination: Path, replace: bool = False):
        """
        Write this config to a file.

        Args:
            destination (Path): The path to write to.
            replace (bool): Set to ``True`` to overwrite the file if it exists.
        """
        if destination.exists() and not replace:
            raise ValueError(f"Destination {destination} exists.")
        elif replace:
            destination.unlink(missing_ok=True)

        if destination.suffix in (".yml", ".yaml"):
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "x") as file:
                data = self.model_dump(by_alias=True, mode="json")
                yaml.safe_dump(data, file)

        elif destination.suffix == ".json":
            destination.write_text(self.model_dump_json(by_alias=True), encoding="utf8")

        else:
            raise ConfigError(f"Unsupported destination file type '{destination}'.")


def read_config_file(path: Path, must_exist: bool = False) -> dict:
    """
    Load a configuration file into memory.

    Args:
        path (Path): The file. Must be ``.json``, ``.yaml``, ``.yml``
          or a ``pyproject.toml`` with a ``[tool.frg-deploy]`` table.
        must_exist (bool): ``True`` raises when the file is missing.

    Returns:
        dict: Configured settings parsed from a config file.
    """
    if not path.is_file():
        if must_exist:
            raise ConfigError(f"{path} does not exist!")

        return {}

    contents = path.read_text(encoding="utf8")
    try:
        if path.name == "pyproject.toml":
            config = tomllib.loads(contents).get("tool", {}).get(PYPROJECT_TOOL_NAME, {})
        elif path.suffix == ".json":
            config = json.loads(contents)
        elif path.suffix in (".yml", ".yaml"):
            config = yaml.safe_load(contents)
        else:
            raise ConfigError(f"Cannot parse '{path.suffix}' files!")

    except (ValueError, yaml.YAMLError) as err:
        # NOTE: JSON and TOML decode errors are ValueErrors.
        raise ConfigError(f"Unable to parse '{path}': {err}") from err

    if config is None:
        return {}
    elif not isinstance(config, dict):
        raise ConfigError(f"Expecting a mapping in '{path}'. Received: {type(config).__name__}.")

    return config


def merge_configs(*cfgs: dict) -> dict:
    if len(cfgs) == 0:
        return {}
    elif len(cfgs) == 1:
        return cfgs[0]

    new_base = _merge_configs(cfgs[0], cfgs[1])
    return merge_configs(new_base, *cfgs[2:])


def _merge_configs(base: dict, secondary: dict) -> dict:
    result: dict = {}

    # Short circuits
    if not base and not secondary:
        return result
    elif not base:
        return secondary
    elif not secondary:
        return base

    for key, value in base.items():
        if key not in secondary:
            result[key] = value

        elif not isinstance(value, dict) or not isinstance(secondary[key], dict):
            # Is a primitive value found in both configs.
            # Must use the second one.
            result[key] = secondary[key]

        else:
            # Merge the dictionaries.
            result[key] = _merge_configs(value, secondary[key])

    # Add missed keys from secondary.
    for key, value in secondary.items():
        if key not in base:
            result[key] = value

    return result


def _nested_model(annotation: Any) -> Optional[type[BaseModel]]:
    for candidate in (annotation, *get_args(annotation)):
        if (
            get_origin(candidate) is None
            and isinstance(candidate, type)
            and issubclass(candidate, BaseModel)
        ):
            return candidate

    return None


def _to_aliases(model: type[BaseModel], data: Any) -> Any:
    """
    Rename field-name keys (e.g. ``gas_price``) to the aliases
    ``model_dump(by_alias=True)`` writes (e.g. ``gasPrice``), so an
    override merges onto the key it is meant to replace.
    """
    if not isinstance(data, dict):
        return data

    if issubclass(model, RootModel):
        item_model = _nested_model(model.model_fields["root"].annotation)
        if item_model is None:
            return data

        return {key: _to_aliases(item_model, value) for key, value in data.items()}

    result: dict = {}
    for key, value in data.items():
        field = model.model_fields.get(key)
        if field is None:
            field = next((f for f in model.model_fields.values() if f.alias == key), None)
        elif field.alias:
            key = field.alias

        nested = _nested_model(field.annotation) if field is not None else None
        result[key] = _to_aliases(nested, value) if nested is not None else value

    return result


def _replace_endpoint_sources(overrides: dict) -> dict:
    # An override naming one endpoint source drops the inherited other one.
    networks = overrides.get("networks")
    if not isinstance(networks, dict):
        return overrides

    for entry in networks.values():
        provider = entry.get("provider") if isinstance(entry, dict) else None
        if not isinstance(provider, dict):
            continue
        elif "endpoint_env" in provider and "endpoint" not in provider:
            provider["endpoint"] = None
        elif "endpoint" in provider and "endpoint_env" not in provider:
            provider["endpoint_env"] = None

    return overrides


def load_config(
    path: Optional[Union[Path, str]] = None, shared_networks: Optional[dict[str, dict]] = None
) -> DeployConfig:
    """
    Load the built-in manifest, merged with overrides from a config file.

    Args:
        path (Optional[Union[Path, str]]): The override file. Defaults to
          ``deploy-config.yaml`` in the working directory, if it exists.
        shared_networks (Optional[dict[str, dict]]): The shared network
          parameters. Defaults to :func:`~frg_deploy.networks.load_shared_networks`.

    Returns:
        :class:`~frg_deploy.config.DeployConfig`
    """
    from frg_deploy.manifest import build_manifest

    base = build_manifest(shared=shared_networks)
    if path is None:
        override_path = Path.cwd() / CONFIG_FILE_NAME
        if not override_path.is_file():
            return base
    else:
        override_path = Path(path)

    overrides = read_config_file(override_path, must_exist=True)
    if not overrides:
        return base

    logger.debug(f"Applying config overrides from '{override_path}'.")
    overrides = _replace_endpoint_sources(_to_aliases(DeployConfig, overrides))
    data = merge_configs(base.model_dump(mode="json", by_alias=True), overrides)
    try:
        return DeployConfig.model_validate(data)
    except ValidationError as err:
        raise ConfigError(f"'{override_path}' is invalid!\n{err}") from err
