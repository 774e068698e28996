"""Click CLI entry point for swaplist.

All commands are thin orchestration wrappers — business logic lives in
config, fetchers, full, filestore, and output modules.

Exit codes:
  0   — success
  1   — generic error
  2   — node / explorer API error
  3   — network error
  4   — invalid request or inconsistent chain data
  5   — config error
  6   — output file error
  130 — interrupted (SIGINT / SIGTERM)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import shutil
import signal
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from swaplist import __version__
from swaplist.config import (
    SwaplistConfig,
    get_default_config_path,
    load_config,
    save_config,
    validate_config,
)
from swaplist.exceptions import ConfigInvalidError, StorageError, SwaplistError
from swaplist.fetchers import get_explorer_client, get_rpc_client
from swaplist.filestore import save_transactions, save_transactions_async
from swaplist.full import FullClient
from swaplist.models import ExplorerRequest, TransactionsRequest
from swaplist.output import format_output, mask_api_key, mask_endpoint

logger = logging.getLogger("swaplist")

DEFAULT_CONTRACT_ADDRESS = "0xc2d5a532cf69aa9a1378737d8ccdef884b6e7420"
DEFAULT_START_BLOCK = 19475474
DEFAULT_END_BLOCK = 19475479

# Seconds between "processing..." log lines during a full retrieval.
PROGRESS_INTERVAL = 10.0


# ── Error handler ─────────────────────────────────────────────────────────────


def _output_error(err: SwaplistError | Exception) -> None:
    """Write error JSON to stderr."""
    if isinstance(err, SwaplistError):
        payload = err.to_dict()
        exit_code = err.exit_code
    else:
        payload = {"error": "unknown_error", "message": str(err), "details": {}}
        exit_code = 1
    sys.stderr.write(json.dumps(payload) + "\n")
    sys.stderr.flush()
    sys.exit(exit_code)


def _configure_logging(level: str) -> None:
    """Send swaplist logs to stderr through Rich; stdout stays machine-readable."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root = logging.getLogger("swaplist")
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
    root.propagate = False


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    envvar="SWAPLIST_CONFIG",
    default=None,
    help="Config file path (default: ~/.swaplist/config.toml)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "table"]),
    default=None,
    help="Summary format (overrides config default)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log verbosity (overrides config)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    output_format: str | None,
    log_level: str | None,
) -> None:
    """swaplist — senders and timestamps of transactions that touched a contract."""
    ctx.ensure_object(dict)
    config_error: SwaplistError | None = None
    try:
        config = load_config(config_path)
    except SwaplistError as e:
        # On config errors, use defaults (so config init still works)
        config = SwaplistConfig()
        config_error = e

    _configure_logging(log_level or config.log.level)
    if config_error is not None:
        logger.warning("ignoring config: %s", config_error.message)

    ctx.obj["config"] = config
    ctx.obj["format"] = output_format or config.output.default_format
    ctx.obj["config_path"] = config_path


# ── Full command ──────────────────────────────────────────────────────────────


@cli.command("full")
@click.option("--address", "-a", default=DEFAULT_CONTRACT_ADDRESS, show_default=True,
              help="Contract address")
@click.option("--start", "start_block", default=DEFAULT_START_BLOCK, type=click.IntRange(min=0),
              show_default=True, help="Start block number")
@click.option("--end", "end_block", default=DEFAULT_END_BLOCK, type=click.IntRange(min=0),
              show_default=True, help="End block number (0 = latest)")
@click.option("--endpoint", "-e", default=None, help="Node JSON-RPC endpoint (default from config)")
@click.option("--max-request", "-m", default=None, type=click.IntRange(min=0),
              help="Maximum requests per second, 0 = unlimited (default from config)")
@click.option("--block-range-limit", "-b", default=None, type=click.IntRange(min=1),
              help="Blocks per log query (default from config)")
@click.option("--output", "output_path", default=None, help="Output file (default from config)")
@click.pass_context
def full_command(
    ctx: click.Context,
    address: str,
    start_block: int,
    end_block: int,
    endpoint: str | None,
    max_request: int | None,
    block_range_limit: int | None,
    output_path: str | None,
) -> None:
    """Retrieve transaction senders with timestamps from a contract's logs.

    Saves senders to a file as they arrive; can be interrupted at any time.
    """
    config: SwaplistConfig = ctx.obj["config"]
    fmt = ctx.obj.get("format", "json")

    endpoint = endpoint or config.rpc.endpoint
    rate = config.rpc.max_requests_per_second if max_request is None else max_request
    limit = block_range_limit or config.rpc.block_range_limit
    output_path = output_path or config.output.path
    run_config = replace(
        config,
        rpc=replace(
            config.rpc,
            endpoint=endpoint,
            max_requests_per_second=rate,
            block_range_limit=limit,
        ),
    )

    request = TransactionsRequest(
        address=address,
        start_block=start_block,
        end_block=end_block or None,
    )

    logger.info("retrieving addresses for contract %s", address)

    async def _run() -> dict[str, Any]:
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        installed = _install_signal_handlers(loop, cancel)
        try:
            async with get_rpc_client(run_config) as ec:
                client = FullClient(ec, run_config.rpc.block_range_limit)
                saved = await _stream_to_file(client, request, output_path, cancel)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        return {
            "status": "completed",
            "address": address,
            "start_block": start_block,
            "end_block": end_block or None,
            "endpoint": mask_endpoint(endpoint),
            "saved": saved,
            "output": output_path,
        }

    try:
        result = asyncio.run(_run())
    except SwaplistError as e:
        _output_error(e)
        return
    logger.info("all transactions have been saved")
    click.echo(format_output(result, fmt))


async def _stream_to_file(
    client: FullClient,
    request: TransactionsRequest,
    output_path: str,
    cancel: asyncio.Event,
) -> int:
    """Run one retrieval, writing results as they arrive. Returns lines written."""
    stream = client.get_transactions(request, cancel)
    saver = asyncio.create_task(save_transactions_async(stream.transactions, output_path, cancel))
    progress = asyncio.create_task(_log_progress(PROGRESS_INTERVAL))
    try:
        try:
            saved = await saver
        except StorageError:
            await stream.aclose()
            raise
        err = await stream.error()
        if err is not None:
            logger.error("error retrieving transactions: %s", err)
            raise err
        return saved
    finally:
        progress.cancel()
        await asyncio.gather(progress, return_exceptions=True)
        await stream.aclose()


async def _log_progress(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        logger.info("processing...")


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, cancel: asyncio.Event
) -> list[signal.Signals]:
    """Make SIGINT/SIGTERM set `cancel`. Returns the signals actually hooked."""

    def _on_signal() -> None:
        if not cancel.is_set():
            logger.info("shutting down...")
        cancel.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops or outside the main thread.
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, _on_signal)
            installed.append(sig)
    return installed


# ── Limit command ─────────────────────────────────────────────────────────────


@cli.command("limit")
@click.option("--address", "-a", default=DEFAULT_CONTRACT_ADDRESS, show_default=True,
              help="Contract address")
@click.option("--number", "-n", "amount", default=1000, type=int, show_default=True,
              help="Number of addresses to retrieve (1-10000)")
@click.option("--order", "-o", default="asc", type=click.Choice(["asc", "desc"]),
              show_default=True, help="Order to retrieve addresses")
@click.option("--apikey", "-k", default=None, help="Explorer API key (default from config)")
@click.option("--start", "start_block", default=0, type=click.IntRange(min=0), show_default=True)
@click.option("--end", "end_block", default=0, type=click.IntRange(min=0), show_default=True,
              help="End block number (0 = latest)")
@click.option("--output", "output_path", default=None, help="Output file (default from config)")
@click.pass_context
def limit_command(
    ctx: click.Context,
    address: str,
    amount: int,
    order: str,
    apikey: str | None,
    start_block: int,
    end_block: int,
    output_path: str | None,
) -> None:
    """Retrieve up to 10,000 transaction senders with timestamps from the block explorer."""
    config: SwaplistConfig = ctx.obj["config"]
    fmt = ctx.obj.get("format", "json")
    output_path = output_path or config.output.path

    request = ExplorerRequest(
        address=address,
        amount=amount,
        order=order,
        api_key=apikey or config.explorer.api_key,
        start_block=start_block,
        end_block=end_block or None,
    )

    logger.info("retrieving %d addresses for contract %s in %s order...", amount, address, order)

    async def _run() -> list:
        async with get_explorer_client(config) as explorer:
            return await explorer.get_transactions(request)

    try:
        txns = asyncio.run(_run())
        logger.info("number of transactions retrieved: %d", len(txns))
        logger.info("saving to file...")
        saved = save_transactions(txns, output_path)
    except SwaplistError as e:
        _output_error(e)
        return

    click.echo(
        format_output(
            {
                "status": "completed",
                "address": address,
                "order": order,
                "saved": saved,
                "output": output_path,
            },
            fmt,
        )
    )


# ── Config commands ───────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Manage swaplist configuration."""


def _config_file(ctx: click.Context) -> Path:
    provided = ctx.obj.get("config_path")
    return Path(provided) if provided else get_default_config_path()


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a default config to ~/.swaplist/config.toml (or --config)."""
    target = _config_file(ctx)
    result: dict[str, Any] = {"config_path": str(target)}

    if target.exists():
        if not force:
            result.update(status="already_exists", hint="Use --force to reinitialize")
            click.echo(json.dumps(result))
            return
        backup = target.with_name(target.name + ".bak")
        shutil.copy2(target, backup)
        result.update(status="reinitialized", backup=str(backup))
    else:
        result["status"] = "initialized"

    try:
        save_config(SwaplistConfig(), str(target))
    except OSError as e:
        _output_error(ConfigInvalidError(f"Cannot write config: {e}"))
        return
    click.echo(json.dumps(result))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a config value by dotted key path (e.g. rpc.block_range_limit)."""
    config: SwaplistConfig = ctx.obj["config"]
    try:
        typed_value = config.set_value(key, value)
        validate_config(config)
        path = save_config(config, ctx.obj.get("config_path"))
    except SwaplistError as e:
        _output_error(e)
        return
    except OSError as e:
        _output_error(ConfigInvalidError(f"Cannot write config: {e}"))
        return

    logger.debug("wrote %s", path)
    display_value = mask_api_key(str(typed_value)) if key.endswith("api_key") else typed_value
    click.echo(json.dumps({"status": "updated", "key": key, "value": display_value}))


@config_group.command("show")
@click.option("--format", "fmt", type=click.Choice(["json", "table"]), default=None)
@click.pass_context
def config_show(ctx: click.Context, fmt: str | None) -> None:
    """Show current configuration (API key and endpoint token masked)."""
    config: SwaplistConfig = ctx.obj["config"]
    result: dict[str, Any] = {"config_path": str(_config_file(ctx)), **asdict(config)}
    result["rpc"]["endpoint"] = mask_endpoint(config.rpc.endpoint)
    result["explorer"]["api_key"] = mask_api_key(config.explorer.api_key)

    click.echo(format_output(result, fmt or ctx.obj.get("format", "json")))


if __name__ == "__main__":
    cli()
