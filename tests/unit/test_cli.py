"""Test CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from assistant_gateway.cli import cli
from assistant_gateway.exceptions import ConfigurationError
from assistant_gateway.routing.models import QueryAnalysis


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_gateway():
    gateway = MagicMock()
    gateway.selector.describe = AsyncMock(
        return_value=[
            {
                "kind": "ollama",
                "name": "Ollama",
                "model": "llama3.1",
                "local": True,
                "preferred": True,
                "available": False,
                "problem": None,
            },
            {
                "kind": "openai",
                "name": "OpenAI",
                "model": "gpt-4o-mini",
                "local": False,
                "preferred": False,
                "available": True,
                "problem": None,
            },
        ]
    )
    gateway.selector.list_models = AsyncMock(return_value={"openai": ["gpt-4o", "gpt-4o-mini"], "ollama": []})
    gateway.aclose = AsyncMock()
    return gateway


class TestCLICommands:
    """Test CLI commands"""

    def test_version_command(self, runner):
        with patch("assistant_gateway.cli.get_version", return_value="1.0.0"):
            result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert "v1.0.0" in result.output

    def test_version_json_format(self, runner):
        with patch("assistant_gateway.cli.get_version", return_value="1.0.0"):
            result = runner.invoke(cli, ["version", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"version": "1.0.0"}

    def test_help_command(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "Usage:" in result.output
        for command in ("analyze", "ask", "providers", "version"):
            assert command in result.output

    def test_providers_command(self, runner, fake_gateway):
        with patch("assistant_gateway.cli._build_gateway", return_value=fake_gateway):
            result = runner.invoke(cli, ["providers"])

        assert result.exit_code == 0
        assert "* Ollama (ollama) model=llama3.1 [unavailable]" in result.output
        assert "  OpenAI (openai) model=gpt-4o-mini [available]" in result.output
        assert "models: gpt-4o, gpt-4o-mini" in result.output
        fake_gateway.aclose.assert_awaited_once()

    def test_providers_none_configured(self, runner, fake_gateway):
        fake_gateway.selector.describe = AsyncMock(return_value=[])
        with patch("assistant_gateway.cli._build_gateway", return_value=fake_gateway):
            result = runner.invoke(cli, ["providers"])

        assert result.exit_code == 0
        assert "No providers configured." in result.output

    def test_providers_configuration_error(self, runner):
        with patch(
            "assistant_gateway.cli._build_gateway",
            side_effect=ConfigurationError("cloud provider 'gemini' is not configured", missing=["gemini"]),
        ):
            result = runner.invoke(cli, ["providers"])

        assert result.exit_code == 1
        assert "gemini" in result.output

    def test_analyze_command(self, runner, fake_gateway):
        fake_gateway.analyzer.analyze = AsyncMock(
            return_value=QueryAnalysis(needs_graph_tool=True, endpoint="/users/$count", source="heuristic")
        )
        with patch("assistant_gateway.cli._build_gateway", return_value=fake_gateway):
            result = runner.invoke(cli, ["analyze", "How many users?", "--heuristic"])

        assert result.exit_code == 0
        assert json.loads(result.output)["endpoint"] == "/users/$count"
        fake_gateway.analyzer.analyze.assert_awaited_once_with("How many users?", heuristic_only=True)

    def test_analyze_heuristic_with_default_settings(self, runner, monkeypatch):
        monkeypatch.delenv("TOOL_SERVERS", raising=False)
        result = runner.invoke(cli, ["analyze", "Show me guest accounts", "--heuristic"])

        assert result.exit_code == 0
        analysis = json.loads(result.output)
        assert analysis["endpoint"] == "/users"
        assert analysis["params"] == {"$filter": "userType eq 'Guest'"}

    def test_ask_command_with_trace(self, runner, fake_gateway):
        turn = MagicMock()
        turn.final_response = "You have 52 users."
        turn.trace.steps = ["Query analysis (heuristic)", "Directory query completed"]
        fake_gateway.handle_turn = AsyncMock(return_value=turn)

        with patch("assistant_gateway.cli._build_gateway", return_value=fake_gateway):
            result = runner.invoke(cli, ["ask", "How many users?", "--session", "s1", "--trace"])

        assert result.exit_code == 0
        assert result.output.startswith("You have 52 users.")
        assert "- Directory query completed" in result.output
        assert fake_gateway.handle_turn.await_args.kwargs == {"session_id": "s1"}
        fake_gateway.aclose.assert_awaited_once()
