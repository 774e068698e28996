"""Tests for swaplist/cli.py — Click CLI entry point."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
import respx
from click.testing import CliRunner

from swaplist.cli import cli
from swaplist.config import DEFAULT_EXPLORER_URL
from swaplist.exceptions import RPCError
from tests.fakes import CONTRACT, SENDER_A, SENDER_B, FakeNode


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the CLI at a config file that does not exist yet."""
    for var in ("SWAPLIST_EXPLORER_API_KEY", "SWAPLIST_RPC_ENDPOINT", "SWAPLIST_OUTPUT_PATH"):
        monkeypatch.delenv(var, raising=False)
    return str(tmp_path / "config.toml")


class FakeRPCFactory:
    """Stands in for get_rpc_client: records the config, yields a FakeNode."""

    def __init__(self, node: FakeNode) -> None:
        self.node = node
        self.config = None

    def __call__(self, config) -> FakeRPCFactory:
        self.config = config
        return self

    async def __aenter__(self) -> FakeNode:
        return self.node

    async def __aexit__(self, *exc_info) -> None:
        return None


# ── version ───────────────────────────────────────────────────────────────────


def test_cli_version(runner: CliRunner) -> None:
    """--version flag should output version string."""
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_cli_help(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "full" in result.output
    assert "limit" in result.output


# ── config commands ───────────────────────────────────────────────────────────


def test_config_init(runner: CliRunner, config_path: str) -> None:
    """config init should create config file."""
    result = runner.invoke(cli, ["--config", config_path, "config", "init"])
    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["status"] == "initialized"
    assert Path(config_path).exists()


def test_config_init_already_exists(runner: CliRunner, config_path: str) -> None:
    """config init without --force should not overwrite existing config."""
    Path(config_path).write_text("[rpc]\nblock_range_limit = 9\n")

    result = runner.invoke(
        cli, ["--config", config_path, "--log-level", "ERROR", "config", "init"]
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["status"] == "already_exists"
    assert "block_range_limit = 9" in Path(config_path).read_text()


def test_config_init_force_keeps_backup(runner: CliRunner, config_path: str) -> None:
    Path(config_path).write_text("[rpc]\nblock_range_limit = 9\n")

    result = runner.invoke(
        cli, ["--config", config_path, "--log-level", "ERROR", "config", "init", "--force"]
    )
    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["status"] == "reinitialized"
    assert Path(output["backup"]).read_text() == "[rpc]\nblock_range_limit = 9\n"


def test_config_show_masks_secrets(runner: CliRunner, config_path: str) -> None:
    Path(config_path).write_text(
        '[rpc]\nendpoint = "https://node.example/secret-token"\n'
        '[explorer]\napi_key = "ABCDEFGHIJKLMNOP"\n'
    )
    result = runner.invoke(
        cli, ["--config", config_path, "--log-level", "ERROR", "config", "show"]
    )
    assert result.exit_code == 0
    output = json.loads(result.output)
    assert output["rpc"]["endpoint"] == "https://node.example/****"
    assert output["explorer"]["api_key"] == "ABCD****"
    assert "secret-token" not in result.output


def test_config_show_table(runner: CliRunner, config_path: str) -> None:
    result = runner.invoke(
        cli, ["--config", config_path, "--log-level", "ERROR", "config", "show", "--format", "table"]
    )
    assert result.exit_code == 0
    assert "rpc.block_range_limit" in result.output


def test_config_set(runner: CliRunner, config_path: str) -> None:
    """config set should persist a typed value."""
    result = runner.invoke(
        cli,
        ["--config", config_path, "--log-level", "ERROR", "config", "set", "rpc.block_range_limit", "10"],
    )
    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "status": "updated",
        "key": "rpc.block_range_limit",
        "value": 10,
    }
    assert "block_range_limit = 10" in Path(config_path).read_text()


def test_config_set_masks_api_key(runner: CliRunner, config_path: str) -> None:
    result = runner.invoke(
        cli,
        ["--config", config_path, "--log-level", "ERROR", "config", "set", "explorer.api_key", "SECRETKEY99"],
    )
    assert result.exit_code == 0
    assert json.loads(result.output)["value"] == "SECR****"


def test_config_set_unknown_key(runner: CliRunner, config_path: str) -> None:
    result = runner.invoke(
        cli, ["--config", config_path, "--log-level", "ERROR", "config", "set", "rpc.nope", "1"]
    )
    assert result.exit_code == 5


def test_config_set_rejects_invalid_value(runner: CliRunner, config_path: str) -> None:
    result = runner.invoke(
        cli,
        ["--config", config_path, "--log-level", "ERROR", "config", "set", "rpc.block_range_limit", "0"],
    )
    assert result.exit_code == 5
    assert not Path(config_path).exists()


# ── full ─────────────────────────────────────────────────────────────────────


def _invoke_full(runner: CliRunner, config_path: str, factory: FakeRPCFactory, *args: str):
    with patch("swaplist.cli.get_rpc_client", factory):
        return runner.invoke(
            cli,
            ["--config", config_path, "--log-level", "ERROR", "full", "-a", CONTRACT, *args],
        )


def test_full_writes_senders_to_file(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    out = tmp_path / "out.txt"
    factory = FakeRPCFactory(node)

    result = _invoke_full(
        runner, config_path, factory,
        "--start", "100", "--end", "109", "-b", "5", "--output", str(out),
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(result.output)
    assert summary["status"] == "completed"
    assert summary["saved"] == 4
    assert out.read_text().splitlines() == [
        f"{SENDER_A}:1700000000",
        f"{SENDER_B}:1700000000",
        f"{SENDER_B}:1700000015",
        f"{SENDER_A}:1700000035",
    ]
    assert node.filter_windows() == [(100, 104), (105, 109)]


def test_full_uses_flags_over_config(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    factory = FakeRPCFactory(node)
    result = _invoke_full(
        runner, config_path, factory,
        "--start", "100", "--end", "101",
        "-e", "https://node.example/my-token", "-m", "3", "-b", "2",
        "--output", str(tmp_path / "out.txt"),
    )

    assert result.exit_code == 0, result.output
    assert factory.config.rpc.endpoint == "https://node.example/my-token"
    assert factory.config.rpc.max_requests_per_second == 3
    assert factory.config.rpc.block_range_limit == 2
    assert node.filter_windows() == [(100, 101)]
    assert json.loads(result.output)["endpoint"] == "https://node.example/****"


def test_full_end_zero_means_latest(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    result = _invoke_full(
        runner, config_path, FakeRPCFactory(node),
        "--start", "0", "--end", "0", "-b", "100000000", "--output", str(tmp_path / "out.txt"),
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["end_block"] is None
    assert node.filter_windows() == [(0, 99_999_999)]


def test_full_start_after_end(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    result = _invoke_full(
        runner, config_path, FakeRPCFactory(node),
        "--start", "200", "--end", "100", "--output", str(tmp_path / "out.txt"),
    )
    assert result.exit_code == 4
    assert node.calls == []


def test_full_node_failure(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    node.fail["filter_logs"] = RPCError("node down")
    result = _invoke_full(
        runner, config_path, FakeRPCFactory(node),
        "--start", "100", "--end", "109", "--output", str(tmp_path / "out.txt"),
    )
    assert result.exit_code == 2


def test_full_table_summary(runner: CliRunner, config_path: str, node, tmp_path: Path) -> None:
    with patch("swaplist.cli.get_rpc_client", FakeRPCFactory(node)):
        result = runner.invoke(
            cli,
            [
                "--config", config_path, "--log-level", "ERROR", "--format", "table",
                "full", "--start", "100", "--end", "109", "--output", str(tmp_path / "out.txt"),
            ],
        )
    assert result.exit_code == 0, result.output
    assert "Retrieval" in result.output
    assert "completed" in result.output


def test_full_malformed_node_reply_exits_with_api_error(
    runner: CliRunner, config_path: str, tmp_path: Path
) -> None:
    endpoint = "https://node.example/rpc"

    def answer(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        result = "0x64" if body["method"] == "eth_chainId" else [{"transactionHash": "0x" + "a1" * 32}]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    with respx.mock:
        respx.post(endpoint).mock(side_effect=answer)
        result = runner.invoke(
            cli,
            [
                "--config", config_path, "--log-level", "CRITICAL", "full",
                "-a", CONTRACT, "--start", "100", "--end", "104", "-m", "0",
                "-e", endpoint, "--output", str(tmp_path / "out.txt"),
            ],
        )

    assert result.exit_code == 2
    assert "malformed" in result.output
    assert "log_fetch" in result.output


# ── limit ────────────────────────────────────────────────────────────────────


def test_limit_writes_senders_to_file(runner: CliRunner, config_path: str, tmp_path: Path) -> None:
    out = tmp_path / "limit.txt"
    rows = [
        {"from": "0xaaa", "timeStamp": "1706906640"},
        {"from": "0xbbb", "timeStamp": "1706906700"},
    ]
    with respx.mock:
        route = respx.get(DEFAULT_EXPLORER_URL).mock(
            return_value=httpx.Response(200, json={"status": "1", "message": "OK", "result": rows})
        )
        result = runner.invoke(
            cli,
            [
                "--config", config_path, "--log-level", "ERROR",
                "limit", "-n", "2", "-o", "desc", "-k", "KEY123", "--output", str(out),
            ],
        )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["saved"] == 2
    assert out.read_text() == "0xaaa:1706906640\n0xbbb:1706906700\n"
    params = route.calls.last.request.url.params
    assert params["offset"] == "2"
    assert params["sort"] == "desc"


def test_limit_amount_out_of_range(runner: CliRunner, config_path: str, tmp_path: Path) -> None:
    result = runner.invoke(
        cli,
        ["--config", config_path, "--log-level", "ERROR", "limit", "-n", "0", "-k", "KEY123",
         "--output", str(tmp_path / "limit.txt")],
    )
    assert result.exit_code == 4


def test_limit_requires_api_key(runner: CliRunner, config_path: str, tmp_path: Path) -> None:
    result = runner.invoke(
        cli,
        ["--config", config_path, "--log-level", "ERROR", "limit", "--output", str(tmp_path / "limit.txt")],
    )
    assert result.exit_code == 4
