"""Helpers shared by CLI commands."""

import asyncio
import sys
from typing import Any, Awaitable, Callable, TypeVar

import click

from ..db import close_all_connections
from ..errors import ResolutionError

T = TypeVar("T")


def run_async(func: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine function, disposing pooled connections afterwards.

    Resolution errors are reported on stderr and exit with status 1.
    """

    async def _main() -> T:
        try:
            return await func()
        finally:
            await close_all_connections()

    try:
        return asyncio.run(_main())
    except ResolutionError as e:
        click.secho(f"Error [{e.code}]: {e.message}", fg="red", err=True)
        sys.exit(1)


def echo_json(model: Any) -> None:
    click.echo(model.model_dump_json(indent=2))
