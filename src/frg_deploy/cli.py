from collections.abc import Callable
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn, Optional, Union

import click
from click import Choice

from frg_deploy.exceptions import Abort
from frg_deploy.logging import DEFAULT_LOG_LEVEL, DeployLogger, LogLevel, logger

if TYPE_CHECKING:
    from frg_deploy.config import DeployConfig
    from frg_deploy.secrets import EnvironmentSecrets

_VERBOSITY_VALUES = ("--verbosity", "-v")


class DeployCliContextObject(dict):
    """
    A ``click`` context object class. Use via :meth:`~frg_deploy.cli.deploy_cli_context()`.
    It provides logging and lazy access to the loaded config and secrets.
    """

    def __init__(self):
        self.logger = logger
        self.config_path: Optional[Path] = None
        self.network_config_path: Optional[Path] = None
        super().__init__({})

    def __repr__(self) -> str:
        # Customizing this because otherwise it uses `dict` repr, which is confusing.
        return f"<{self.__class__.__name__}>"

    @cached_property
    def config(self) -> "DeployConfig":
        from frg_deploy.config import load_config
        from frg_deploy.networks import load_shared_networks

        shared = load_shared_networks(self.network_config_path)
        return load_config(self.config_path, shared_networks=shared)

    @cached_property
    def secrets(self) -> "EnvironmentSecrets":
        from frg_deploy.secrets import load_secrets

        return load_secrets()

    @staticmethod
    def abort(msg: str, base_error: Optional[Exception] = None) -> NoReturn:
        """
        End execution of the current command invocation.

        Args:
            msg (str): A message to output to the terminal.
            base_error (Exception, optional): Optionally provide
              an error to preserve the exception stack.
        """

        if base_error:
            logger.error(msg)
            raise Abort(msg) from base_error

        raise Abort(msg)


def verbosity_option(
    cli_logger: Optional[DeployLogger] = None,
    default: Optional[Union[str, int, LogLevel]] = None,
) -> Callable:
    """A decorator that adds a `--verbosity, -v` option to the decorated
    command.

    Args:
        cli_logger (:class:`~frg_deploy.logging.DeployLogger` | None): Optionally pass
          a custom logger object.
        default (str | int | :class:`~frg_deploy.logging.LogLevel`): The default log-level
          for this command.

    Returns:
        click option
    """
    _logger = cli_logger or logger
    default = _logger.level if default is None else default

    def set_level(ctx, param, value):
        if isinstance(value, str):
            value = value.upper()
            if value.startswith("LOGLEVEL."):
                value = value.split(".")[-1].strip()

        if _logger._did_parse_sys_argv:
            # Changing mid-session somehow (tests?)
            _logger.set_level(value)
        else:
            _logger._load_from_sys_argv(default=value)

    level_names = [lvl.name for lvl in LogLevel]
    names_str = f"{', '.join(level_names[:-1])}, or {level_names[-1]}"
    return click.option(
        *_VERBOSITY_VALUES,
        callback=set_level,
        default=default or DEFAULT_LOG_LEVEL,
        metavar="LVL",
        expose_value=False,
        help=f"One of {names_str}",
        is_eager=True,
    )


def deploy_cli_context(
    default_log_level: Optional[Union[str, int, LogLevel]] = None,
    obj_type: type = DeployCliContextObject,
) -> Callable:
    """
    A ``click`` context object with helpful utilities.
    Use in your commands to get access to logging and the config.

    Args:
        default_log_level (str | int | :class:`~frg_deploy.logging.LogLevel` |  None): The
          log-level value to pass to :meth:`~frg_deploy.cli.verbosity_option`.
        obj_type (Type): The context object type. Defaults to
          :class:`~frg_deploy.cli.DeployCliContextObject`.

    Returns:
        click option
    """
    default_log_level = logger.level if default_log_level is None else default_log_level

    def decorator(f):
        f = verbosity_option(logger, default=default_log_level)(f)
        f = click.make_pass_decorator(obj_type, ensure=True)(f)
        return f

    return decorator


class OutputFormat(Enum):
    """
    An enum representing output formats, such as ``TREE`` or ``YAML``.
    """

    TREE = "TREE"
    """A rich text tree view of the data."""

    YAML = "YAML"
    """A standard .yaml format of the data."""


def output_format_choice(options: Optional[list[OutputFormat]] = None) -> Choice:
    """
    Returns a ``click.Choice()`` type for the given options.

    Args:
        options (list[:class:`~frg_deploy.cli.OutputFormat`], optional):
          Limit the formats to accept. Defaults to allowing all formats.

    Returns:
        :class:`click.Choice`
    """

    options = options or list(OutputFormat)

    # Uses `str` form of enum for CLI choices.
    return click.Choice([o.value for o in options], case_sensitive=False)


def output_format_option(default: OutputFormat = OutputFormat.TREE):
    """
    A ``click.option`` for specifying a format to use when outputting data.

    Args:
        default (:class:`~frg_deploy.cli.OutputFormat`): Defaults to ``TREE`` format.
    """

    return click.option(
        "--format",
        "output_format",
        type=output_format_choice(),
        default=default.value,
        callback=lambda ctx, param, value: OutputFormat(value.upper()),
    )


def network_name_argument(**kwargs: Any) -> Callable:
    """
    A required ``NAME`` argument naming a configured network. Validation
    happens when the network is looked up, so unknown names get suggestions.
    """
    return click.argument("network_name", metavar="NAME", **kwargs)


def path_option(*param_decls: str, **kwargs: Any) -> Callable:
    return click.option(
        *param_decls,
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        **kwargs,
    )
