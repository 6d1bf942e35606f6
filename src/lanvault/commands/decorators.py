"""Decorators for command functions."""

import asyncio
import functools
import time
import traceback
from collections.abc import Callable

import typer

from lanvault.models.exceptions import (
    InvalidTotpSecret,
    LanVaultError,
    NotFound,
    RequestTimedOut,
    TransportUnavailable,
    VaultAlreadyExists,
    VaultLocked,
    VaultNotFound,
    WrongPassword,
)
from lanvault.utils import exit_codes
from lanvault.utils.logger import get_logger
from lanvault.utils.ui.formatters import format_error

# First match wins, so subclasses come before their bases
ERROR_EXIT_CODES: tuple[tuple[type[Exception], int], ...] = (
    (WrongPassword, exit_codes.ERROR_AUTH_FAILURE),
    (TransportUnavailable, exit_codes.ERROR_NETWORK),
    (RequestTimedOut, exit_codes.ERROR_NETWORK),
    (NotFound, exit_codes.ERROR_NOT_FOUND),
    (VaultNotFound, exit_codes.ERROR_NOT_FOUND),
    (VaultLocked, exit_codes.ERROR_LOCKED),
    (VaultAlreadyExists, exit_codes.ERROR_INVALID_ARGS),
    (InvalidTotpSecret, exit_codes.ERROR_INVALID_ARGS),
    (ValueError, exit_codes.ERROR_INVALID_ARGS),
)


class AppError(Exception):
    """Custom application error with exit code."""

    def __init__(self, message: str, exit_code: int = exit_codes.ERROR_GENERAL):
        super().__init__(message)
        self.exit_code = exit_code


def exit_code_for(error: Exception) -> int:
    """Map an exception to its semantic exit code."""
    if isinstance(error, AppError):
        return error.exit_code
    for error_type, code in ERROR_EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return exit_codes.ERROR_GENERAL


def command_wrapper(func: Callable):
    """Log timing around a command and turn known errors into exit codes."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = get_logger()
        cmd = func.__name__
        start = time.monotonic()
        logger.info("command started: %s", cmd)
        try:
            if asyncio.iscoroutinefunction(func):
                result = asyncio.run(func(*args, **kwargs))
            else:
                result = func(*args, **kwargs)

            elapsed = time.monotonic() - start
            logger.info("command completed: %s (%.3fs)", cmd, elapsed)
            return result

        except (AppError, LanVaultError, ValueError) as e:
            elapsed = time.monotonic() - start
            code = exit_code_for(e)
            logger.error(
                "command failed: %s (%.3fs) - %s [%s]",
                cmd,
                elapsed,
                str(e),
                exit_codes.get_exit_code_name(code),
            )
            format_error(str(e))
            raise typer.Exit(code=code) from e

        except (typer.Exit, typer.Abort):
            # Re-raise Typer's own exits (like --help or explicit Exit(0))
            raise

        except Exception as e:
            elapsed = time.monotonic() - start
            logger.error(
                "command failed: %s (%.3fs) - %s\n%s",
                cmd,
                elapsed,
                str(e),
                traceback.format_exc(),
            )
            format_error(f"An unexpected error occurred: {str(e)}")
            raise typer.Exit(code=exit_codes.ERROR_GENERAL) from e

    return wrapper
