import difflib
import json
import re
from typing import Any

import click
import yaml
from rich import print as echo_rich_text
from rich.tree import Tree
from web3 import HTTPProvider, Web3

from frg_deploy.cli import (
    OutputFormat,
    deploy_cli_context,
    network_name_argument,
    output_format_option,
    path_option,
)
from frg_deploy.exceptions import Abort, FrgDeployException, ProviderError
from frg_deploy.logging import sanitize_url

_DIFFLIB_CUT_OFF = 0.6


class DeployCLI(click.Group):
    def invoke(self, ctx) -> Any:
        try:
            return super().invoke(ctx)

        except click.UsageError as err:
            self._suggest_cmd(ctx, err)

        except FrgDeployException as err:
            raise Abort.from_exception(err) from err

    def _suggest_cmd(self, ctx, usage_error):
        if usage_error.message is None:
            raise usage_error

        elif not (match := re.match("No such command '(.*)'.", usage_error.message)):
            raise usage_error

        bad_arg = match.groups()[0]
        suggested_commands = difflib.get_close_matches(
            bad_arg, self.list_commands(ctx), cutoff=_DIFFLIB_CUT_OFF
        )
        if suggested_commands and bad_arg not in suggested_commands:
            usage_error.message = (
                f"No such command '{bad_arg}'. Did you mean {' or '.join(suggested_commands)}?"
            )

        raise usage_error


@click.group(cls=DeployCLI, context_settings=dict(help_option_names=["-h", "--help"]))
@deploy_cli_context()
@click.version_option(message="%(version)s", package_name="frg-deploy-config")
@path_option("--config", "config_path", help="Config overrides file (default: deploy-config.yaml)")
@path_option("--network-config", "network_config_path", help="Shared network parameters JSON")
def cli(cli_ctx, config_path, network_config_path):
    """
    Inspect the deployment config and its networks.
    """
    cli_ctx.config_path = config_path
    cli_ctx.network_config_path = network_config_path


@cli.command(name="config", short_help="Show the full configuration")
@deploy_cli_context()
def show_config(cli_ctx):
    # NOTE: Using json-mode as yaml.safe_dump requires JSON-like structure.
    model = cli_ctx.config.model_dump(mode="json", by_alias=True, exclude_none=True)
    click.echo(yaml.safe_dump(model, sort_keys=False).strip())


@cli.command(short_help="Show the solc settings")
@deploy_cli_context()
def compiler(cli_ctx):
    """
    Output the compiler version pin and the standard-JSON settings.
    """
    solc = cli_ctx.config.compiler
    click.echo(json.dumps({"version": solc.version, "settings": solc.to_solc_settings()}, indent=2))


@cli.command(short_help="List plugins")
@deploy_cli_context()
def plugins(cli_ctx):
    for plugin in cli_ctx.config.plugins:
        click.echo(plugin)


@cli.command(name="api-keys", short_help="Show which API keys are available")
@deploy_cli_context()
def api_keys(cli_ctx):
    """
    List each service's API key variable and whether it is set.
    Key values are never shown.
    """
    for service, env_name in cli_ctx.config.api_keys.items():
        status = "set" if cli_ctx.secrets.get(env_name) else "missing"
        click.echo(f"{service}: ${env_name} ({status})")


@cli.group(short_help="Manage networks")
def networks():
    """
    Command-line helper for the configured networks.
    """


def _entry_details(entry) -> dict:
    data = entry.model_dump(mode="json", by_alias=True, exclude_none=True)
    data.pop("provider", None)
    data["uri"] = entry.uri
    if entry.provider is not None:
        data["addresses"] = f"{entry.provider.address_index}..{entry.provider.address_range[-1]}"

    return data


@networks.command(name="list", short_help="List configured networks")
@deploy_cli_context()
@output_format_option()
def _list(cli_ctx, output_format):
    """
    List all the configured networks.
    """
    table = cli_ctx.config.networks
    if output_format == OutputFormat.TREE:
        tree = Tree("[bold]networks")
        for name in sorted(table.names):
            entry = table.get(name)
            chain = "any" if entry.chain_id is None else entry.chain_id
            kind = "local" if entry.is_local else "remote"
            network_tree = tree.add(f"[bold green]{name}[dim default]  (chain {chain}, {kind})")
            for key, value in _entry_details(entry).items():
                if key == "network_id":
                    continue

                network_tree.add(f"{key}: {value}")

        echo_rich_text(tree)

    elif output_format == OutputFormat.YAML:
        data = {name: _entry_details(table.get(name)) for name in sorted(table.names)}
        click.echo(yaml.safe_dump(data, sort_keys=True).strip())


@networks.command(short_help="Show a network's settings")
@deploy_cli_context()
@network_name_argument()
def show(cli_ctx, network_name):
    entry = cli_ctx.config.get_network(network_name)
    data = entry.model_dump(mode="json", by_alias=True, exclude_none=True)
    click.echo(yaml.safe_dump({network_name: data}, sort_keys=False).strip())


@networks.command(short_help="List a network's derived addresses")
@deploy_cli_context()
@network_name_argument()
def accounts(cli_ctx, network_name):
    """
    Derive and list the addresses a remote network's provider manages.
    Requires the mnemonic to be set; it is never printed.
    """
    builder = cli_ctx.config.provider_factory(network_name, secrets=cli_ctx.secrets)
    if builder is None:
        cli_ctx.abort(f"'{network_name}' is a local network and has no derived accounts.")

    provider = builder.build()
    for index, address in zip(builder.spec.address_range, provider.addresses):
        click.echo(f"{index}: {address}")


@networks.command(short_help="Check if a network's node is available")
@deploy_cli_context()
@network_name_argument()
def ping(cli_ctx, network_name):
    entry = cli_ctx.config.get_network(network_name)
    builder = entry.provider_factory(secrets=cli_ctx.secrets, name=network_name)
    if builder is None:
        uri = entry.uri
        is_connected = Web3(HTTPProvider(uri)).is_connected()

    else:
        provider = builder.build()
        uri = provider.endpoint
        try:
            provider.connect()
        except ProviderError as err:
            cli_ctx.logger.error_from_exception(err, f"Unable to connect to '{network_name}'.")

        is_connected = provider.is_connected

    status = "AVAILABLE" if is_connected else "UNAVAILABLE"
    click.echo(f"'{network_name}' ({sanitize_url(uri)}) connection status: {status}")
