"""CLI commands for resilient-fetch."""

import asyncio
import logging
import sys
import uuid
from dataclasses import dataclass, field
from typing import Any

import click
import httpx
import structlog

from resilient_fetch import __version__
from resilient_fetch.features.fetch.client import ResilientFetcher
from resilient_fetch.features.fetch.errors import FetchFailureError
from resilient_fetch.features.fetch.models import RequestOptions, is_ok
from resilient_fetch.features.fetch.origin_guard import is_allowed
from resilient_fetch.features.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
)
from resilient_fetch.settings import AppSettings, get_settings


logger = structlog.get_logger()

DEFAULT_MAX_BYTES = 2000


@dataclass
class CliState:
    """Objects shared between the group and its commands.

    ``overrides`` is forwarded to ResilientFetcher; tests use it to inject
    a transport, sleep and clock.
    """

    settings: AppSettings
    overrides: dict[str, Any] = field(default_factory=dict)

    def build_fetcher(self) -> ResilientFetcher:
        return ResilientFetcher(self.settings.to_fetch_config(), **self.overrides)


def _parse_headers(
    ctx: click.Context,  # noqa: ARG001
    param: click.Parameter,  # noqa: ARG001
    values: tuple[str, ...],
) -> dict[str, str]:
    """Parse repeated ``--header "Name: value"`` options."""
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            msg = f"Expected 'Name: value', got {raw!r}"
            raise click.BadParameter(msg)
        headers[name.strip()] = value.strip()
    return headers


def _echo_response(response: httpx.Response, max_bytes: int) -> None:
    """Print the status line and a prefix of the body."""
    click.echo(f"HTTP {response.status_code} {response.reason_phrase}".rstrip())
    body = response.content
    if max_bytes and len(body) > max_bytes:
        click.echo(body[:max_bytes].decode("utf-8", errors="replace"))
        click.echo(f"... ({len(body) - max_bytes} more bytes)", err=True)
    elif body:
        click.echo(body.decode("utf-8", errors="replace"))


def _run_fetch(coro_factory: Any, state: CliState) -> httpx.Response:
    """Run one fetch coroutine, reporting failures the way users see them."""

    async def runner() -> httpx.Response:
        async with state.build_fetcher() as fetcher:
            return await coro_factory(fetcher)

    request_id = uuid.uuid4().hex[:12]
    bind_request_context(request_id)
    try:
        return asyncio.run(runner())
    except FetchFailureError as e:
        logger.debug("cli_fetch_failed", **e.to_dict())
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    finally:
        clear_request_context()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
@click.pass_context
def cli(ctx: click.Context, json_logs: bool, verbose: bool) -> None:
    """Fetch URLs with retries, rate-limit waits and proxy fallback."""
    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        json_format=json_logs,
    )
    overrides = ctx.obj if isinstance(ctx.obj, dict) else {}
    ctx.obj = CliState(settings=get_settings(), overrides=overrides)


@cli.command()
@click.argument("url")
@click.option(
    "--retries",
    "max_retries",
    type=click.IntRange(min=1),
    default=None,
    help="Attempt budget (default: FETCH_MAX_RETRIES or 3).",
)
@click.option("--method", default="GET", show_default=True, help="HTTP method.")
@click.option(
    "--header",
    "-H",
    "headers",
    multiple=True,
    callback=_parse_headers,
    help="Extra request header, 'Name: value'. Repeatable.",
)
@click.option(
    "--auth/--no-auth",
    default=True,
    help="Send GITHUB_TOKEN to allow-listed hosts (default: true).",
)
@click.option(
    "--max-bytes",
    type=click.IntRange(min=0),
    default=DEFAULT_MAX_BYTES,
    show_default=True,
    help="Body bytes to print; 0 prints everything.",
)
@click.pass_obj
def get(  # noqa: PLR0913
    state: CliState,
    url: str,
    max_retries: int | None,
    method: str,
    headers: dict[str, str],
    auth: bool,
    max_bytes: int,
) -> None:
    """Fetch URL, retrying transient failures with backoff."""
    request_headers = dict(headers)
    config = state.settings.to_fetch_config()
    if auth and is_allowed(url, config.allowed_hosts):
        for name, value in state.settings.auth_headers().items():
            request_headers.setdefault(name, value)
    options = RequestOptions(method=method.upper(), headers=request_headers)

    response = _run_fetch(
        lambda fetcher: fetcher.fetch_with_retry(url, options, max_retries),
        state,
    )
    _echo_response(response, max_bytes)
    if not is_ok(response):
        click.echo(
            f"Error: HTTP {response.status_code} after exhausting retries", err=True
        )
        sys.exit(1)


@cli.command()
@click.argument("url")
@click.option(
    "--max-bytes",
    type=click.IntRange(min=0),
    default=DEFAULT_MAX_BYTES,
    show_default=True,
    help="Body bytes to print; 0 prints everything.",
)
@click.pass_obj
def proxy(state: CliState, url: str, max_bytes: int) -> None:
    """Fetch an allow-listed URL, falling back through CORS proxies."""
    response = _run_fetch(lambda fetcher: fetcher.fetch_with_fallback(url), state)
    _echo_response(response, max_bytes)


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.pass_obj
def check(state: CliState, urls: tuple[str, ...]) -> None:
    """Report whether each URL is eligible for proxy fallback."""
    allowed_hosts = state.settings.to_fetch_config().allowed_hosts
    blocked = 0
    for url in urls:
        if is_allowed(url, allowed_hosts):
            click.echo(f"allowed  {url}")
        else:
            blocked += 1
            click.echo(f"blocked  {url}")
    if blocked:
        sys.exit(1)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
