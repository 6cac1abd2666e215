import json
from pathlib import Path

import pytest
import yaml
from hypothesis import given
from hypothesis import strategies as st

from frg_deploy.config import (
    CONFIG_FILE_NAME,
    DeployConfig,
    load_config,
    merge_configs,
    read_config_file,
)
from frg_deploy.exceptions import ConfigError, MissingCredentialError

YAML_CONTENT = """
networks:
  mainnet:
    gasPrice: 150000000000
  goerli:
    network_id: 5
    provider:
      endpoint_env: GOERLI_PROVIDER
      address_index: 0
      num_addresses: 3
compilers:
  solc:
    version: "0.5.17"
plugins:
  - truffle-plugin-verify
  - solidity-coverage
""".lstrip()
PYPROJECT_TOML = """
[tool.frg-deploy]
plugins = ["truffle-plugin-verify"]

[tool.frg-deploy.compilers.solc]
version = "0.5.16"

[tool.frg-deploy.networks.dev]
host = "127.0.0.1"
port = 8545
network_id = "*"
""".lstrip()


def test_model_validate_empty():
    cfg = DeployConfig.model_validate({})
    assert len(cfg.networks) == 0
    assert cfg.plugins == []
    assert cfg.compiler.optimizer_runs == 200


def test_model_validate_snake_case_names():
    cfg = DeployConfig.model_validate(
        {"networks": {"dev": {"chain_id": 1337, "host": "localhost", "port": 8545, "gas_price": 1}}}
    )
    assert cfg.get_network("dev").gas_price == 1


def test_model_validate_unknown_key():
    with pytest.raises(ValueError):
        DeployConfig.model_validate({"netwroks": {}})


def test_round_trip(manifest):
    data = manifest.model_dump(mode="json", by_alias=True)
    reloaded = DeployConfig.model_validate(data)
    assert reloaded.model_dump(mode="json", by_alias=True) == data


def test_round_trip_through_json(manifest):
    data = json.loads(manifest.model_dump_json(by_alias=True))
    reloaded = DeployConfig.model_validate(data)
    assert reloaded.model_dump(mode="json", by_alias=True) == data


def test_dump_uses_manifest_keys(manifest):
    data = manifest.model_dump(mode="json", by_alias=True)
    assert data["networks"]["bsc"]["network_id"] == 56
    assert data["networks"]["bsc"]["timeoutBlocks"] == 200
    assert data["networks"]["bsc"]["skipDryRun"] is True
    assert data["mocha"]["reporterOptions"] == {"currency": "USD"}
    assert data["compilers"]["solc"]["settings"]["optimizer"] == {"enabled": True, "runs": 200}


def test_dump_contains_no_secrets(manifest, env_secrets, test_mnemonic):
    dumped = manifest.model_dump_json(by_alias=True)
    assert test_mnemonic not in dumped
    assert "TEST_ETHERSCAN_KEY" not in dumped


def test_str(manifest):
    data = yaml.safe_load(str(manifest))
    assert data["plugins"] == ["truffle-plugin-verify"]


def test_repr(manifest):
    assert repr(manifest) == f"<{CONFIG_FILE_NAME}>"


@pytest.mark.parametrize("ext", (".yml", ".yaml", ".json"))
def test_write_to_disk_and_validate_file(manifest, tmp_path, ext):
    path = tmp_path / f"config{ext}"
    manifest.write_to_disk(path)
    actual = DeployConfig.validate_file(path)
    assert actual.model_dump(by_alias=True) == manifest.model_dump(by_alias=True)


def test_write_to_disk_exists(manifest, tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.touch()
    with pytest.raises(ValueError, match="exists"):
        manifest.write_to_disk(path)

    manifest.write_to_disk(path, replace=True)
    assert "networks" in yaml.safe_load(path.read_text())


def test_write_to_disk_unsupported(manifest, tmp_path):
    with pytest.raises(ConfigError, match="Unsupported destination"):
        manifest.write_to_disk(tmp_path / "config.ini")


def test_validate_file_pyproject(tmp_path):
    path = tmp_path / "pyproject.toml"
    path.write_text(PYPROJECT_TOML)
    cfg = DeployConfig.validate_file(path)
    assert cfg.compiler.version == "0.5.16"
    assert cfg.get_network("dev").chain_id is None
    assert cfg.get_network("dev").uri == "http://127.0.0.1:8545"


def test_validate_file_overrides(tmp_path):
    path = tmp_path / "pyproject.toml"
    path.write_text(PYPROJECT_TOML)
    cfg = DeployConfig.validate_file(path, plugins=[])
    assert cfg.plugins == []


def test_validate_file_invalid(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("networks:\n  dev:\n    network_id: 1\n")
    with pytest.raises(ConfigError, match="is invalid"):
        DeployConfig.validate_file(path)


def test_validate_file_missing(tmp_path):
    with pytest.raises(ConfigError, match="does not exist"):
        DeployConfig.validate_file(tmp_path / CONFIG_FILE_NAME)


def test_read_config_file_unknown_type(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[networks]")
    with pytest.raises(ConfigError, match="Cannot parse '.ini' files"):
        read_config_file(path)


def test_read_config_file_not_a_mapping(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("- mainnet\n- rinkeby\n")
    with pytest.raises(ConfigError, match="Expecting a mapping"):
        read_config_file(path)


def test_read_config_file_empty(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.touch()
    assert read_config_file(path) == {}


def test_load_config_defaults_to_manifest(manifest):
    cfg = load_config()
    assert cfg.model_dump(by_alias=True) == manifest.model_dump(by_alias=True)


def test_load_config_from_working_directory():
    Path(CONFIG_FILE_NAME).write_text(YAML_CONTENT)
    cfg = load_config()

    assert cfg.get_network("mainnet").gas_price == 150000000000
    # Untouched values stay.
    assert cfg.get_network("mainnet").gas == 6500000
    assert cfg.get_network("mainnet").provider.endpoint_env == "MAINNET_PROVIDER"

    goerli = cfg.get_network("goerli")
    assert goerli.chain_id == 5
    assert goerli.provider.mnemonic_env == "MNEMONIC"
    assert list(goerli.provider.address_range) == [0, 1, 2]

    assert cfg.compiler.version == "0.5.17"
    assert cfg.compiler.optimizer_runs == 200
    assert cfg.plugins == ["truffle-plugin-verify", "solidity-coverage"]


def test_load_config_explicit_path(tmp_path):
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({"mocha": {"reporterOptions": {"currency": "EUR"}}}))
    cfg = load_config(path)
    assert cfg.test_runner.reporter_options.currency == "EUR"
    assert cfg.test_runner.reporter == "eth-gas-reporter"


def test_load_config_snake_case_overrides(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text(
        "networks:\n"
        "  mainnet:\n"
        "    gas_price: 1\n"
        "  ganacheUnitTest:\n"
        "    chain_id: 5777\n"
        "mocha:\n"
        "  enable_timeouts: true\n"
    )
    cfg = load_config(path)

    mainnet = cfg.get_network("mainnet")
    assert mainnet.gas_price == 1
    assert mainnet.gas == 6500000
    ganache = cfg.get_network("ganacheUnitTest")
    assert ganache.chain_id == 5777
    assert ganache.port == 8545
    assert cfg.test_runner.enable_timeouts is True


def test_load_config_switch_to_endpoint_env(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("networks:\n  bsc:\n    provider:\n      endpoint_env: BSC_PROVIDER\n")
    cfg = load_config(path)

    provider = cfg.get_network("bsc").provider
    assert provider.endpoint_env == "BSC_PROVIDER"
    assert provider.endpoint is None
    # The rest of the provider settings are inherited.
    assert list(provider.address_range) == list(range(16, 35))
    assert cfg.get_network("bsc").uri == "$BSC_PROVIDER"


def test_load_config_switch_to_literal_endpoint(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    overrides = {"networks": {"mainnet": {"provider": {"endpoint": "http://node:8545"}}}}
    path.write_text(json.dumps(overrides))
    cfg = load_config(path)

    provider = cfg.get_network("mainnet").provider
    assert provider.endpoint == "http://node:8545"
    assert provider.endpoint_env is None


def test_load_config_invalid_override(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("networks:\n  mainnet:\n    gas: -1\n")
    with pytest.raises(ConfigError, match="is invalid"):
        load_config(path)


def test_load_config_unknown_network_key(tmp_path):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("networks:\n  mainnet:\n    gas_limit: 1\n")
    with pytest.raises(ConfigError, match="gas_limit"):
        load_config(path)


def test_get_api_key(manifest, secrets):
    assert manifest.get_api_key("etherscan", secrets=secrets) == "TEST_ETHERSCAN_KEY"


def test_get_api_key_missing(manifest, empty_secrets):
    with pytest.raises(MissingCredentialError, match="ETHERSCAN_API_KEY") as err:
        manifest.get_api_key("etherscan", secrets=empty_secrets)

    assert err.value.env_name == "ETHERSCAN_API_KEY"


def test_get_api_key_unknown_service(manifest, secrets):
    with pytest.raises(ConfigError, match="No API key configured for 'bscscan'"):
        manifest.get_api_key("bscscan", secrets=secrets)


class TestMergeConfigs:
    def test_empty(self):
        assert merge_configs() == {}
        assert merge_configs({}, {}) == {}

    def test_single(self):
        assert merge_configs({"a": 1}) == {"a": 1}

    def test_nested(self):
        base = {"networks": {"mainnet": {"gas": 1, "gasPrice": 2}}, "plugins": ["a"]}
        override = {"networks": {"mainnet": {"gas": 3}}, "plugins": ["b"]}
        expected = {"networks": {"mainnet": {"gas": 3, "gasPrice": 2}}, "plugins": ["b"]}
        assert merge_configs(base, override) == expected

    def test_three(self):
        assert merge_configs({"a": 1}, {"b": 2}, {"a": 3}) == {"a": 3, "b": 2}


_keys = st.text(alphabet="abc", min_size=1, max_size=2)
_values = st.recursive(
    st.integers(), lambda children: st.dictionaries(_keys, children, max_size=3), max_leaves=6
)
_configs = st.dictionaries(_keys, _values, max_size=3)


@given(base=_configs, override=_configs)
def test_merge_configs_override_wins(base, override):
    merged = merge_configs(base, override)
    assert set(merged) == set(base) | set(override)
    for key, value in override.items():
        if not isinstance(value, dict) or not isinstance(base.get(key), dict):
            assert merged[key] == value


@given(cfg=_configs)
def test_merge_configs_identity(cfg):
    assert merge_configs(cfg, {}) == cfg
    assert merge_configs({}, cfg) == cfg
