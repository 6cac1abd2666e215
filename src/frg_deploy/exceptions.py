import difflib
import traceback
from collections.abc import Collection
from inspect import getframeinfo, stack
from pathlib import Path
from typing import Optional

import click

from frg_deploy.logging import LogLevel, logger


class FrgDeployException(Exception):
    """
    An exception raised by frg-deploy.
    """


class ConfigError(FrgDeployException):
    """
    Raised when a problem occurs from the configuration file.
    """


class MissingCredentialError(ConfigError):
    """
    Raised when a required secret is not set in the environment.
    """

    def __init__(self, env_name: str, purpose: Optional[str] = None):
        self.env_name = env_name
        message = f"Missing environment variable '{env_name}'"
        if purpose:
            message = f"{message} (required for {purpose})"

        super().__init__(f"{message}.")


class NetworkError(FrgDeployException):
    """
    Raised when a problem occurs when using blockchain networks.
    """


class NetworkNotFoundError(NetworkError):
    """
    Raised when the network with the given name was not found.
    """

    def __init__(self, network: str, options: Optional[Collection[str]] = None):
        self.network = network
        self.options = options or []
        message = f"No network named '{network}'."
        if self.options:
            close_matches = difflib.get_close_matches(network, self.options, cutoff=0.6)
            if close_matches:
                message = f"{message} Did you mean '{', '.join(close_matches)}'?"
            else:
                # No close matches - show all options.
                options_str = "\n".join(sorted(self.options))
                message = f"{message} Options:\n{options_str}"

        super().__init__(message)


class ProviderError(FrgDeployException):
    """
    Raised when a problem occurs when using providers.
    """


class ProviderNotConnectedError(ProviderError):
    """
    Raised when not connected to a provider.
    """

    def __init__(self):
        super().__init__("Not connected to a network provider.")


class Abort(click.ClickException):
    """
    A wrapper around a CLI exception. When you raise this error,
    the error is nicely printed to the terminal. This is
    useful for all user-facing errors.
    """

    def __init__(self, message: Optional[str] = None):
        if not message:
            caller = getframeinfo(stack()[1][0])
            file_path = Path(caller.filename)
            location = file_path.name if file_path.is_file() else caller.filename
            message = f"Operation aborted in {location}::{caller.function} on line {caller.lineno}."

        super().__init__(message)

    @classmethod
    def from_exception(cls, exc: FrgDeployException, show_traceback: Optional[bool] = None):
        show_traceback = (
            logger.level == LogLevel.DEBUG.value if show_traceback is None else show_traceback
        )
        if show_traceback:
            tb = traceback.format_exc()
            err_message = tb or str(exc)
        else:
            err_message = str(exc)

        err_type_name = getattr(type(exc), "__name__", "Exception")
        return Abort(f"({err_type_name}) {err_message}")

    def show(self, file=None):
        """
        Override default ``show`` to print CLI errors in red text.
        """

        logger.error(self.format_message())
