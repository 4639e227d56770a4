"""Tests for configuration lookup and structured logging."""

import json
import logging

import pytest

from threadgraph import config
from threadgraph.observability import clear_trace_context, set_trace_context
from threadgraph.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setattr(config, "THREADGRAPH_CONFIG_FILE", path)
    monkeypatch.setattr(config, "THREADGRAPH_HOME", tmp_path)
    monkeypatch.delenv("THREADGRAPH_RECURSION_LIMIT", raising=False)
    monkeypatch.delenv("THREADGRAPH_STORAGE_PATH", raising=False)
    return path


def make_record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("threadgraph.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---- Config ----
class TestConfig:
    def test_defaults_without_file(self, config_file):
        assert config.get_threadgraph_config() == {}
        assert config.get_recursion_limit() == config.DEFAULT_RECURSION_LIMIT
        assert config.get_preferred_model() == "openai/gpt-4o-mini"
        assert config.get_storage_path() == config_file.parent / "storage"

    def test_values_from_file(self, config_file):
        config_file.write_text(
            json.dumps(
                {
                    "llm": {"provider": "anthropic", "model": "claude-sonnet", "max_tokens": 2048},
                    "execution": {"recursion_limit": 40},
                    "storage": {"path": "/srv/threadgraph"},
                }
            )
        )

        assert config.get_preferred_model() == "anthropic/claude-sonnet"
        assert config.get_max_tokens() == 2048
        assert config.get_recursion_limit() == 40
        assert str(config.get_storage_path()) == "/srv/threadgraph"

    def test_environment_wins_over_file(self, config_file, monkeypatch, tmp_path):
        config_file.write_text(json.dumps({"execution": {"recursion_limit": 40}}))
        monkeypatch.setenv("THREADGRAPH_RECURSION_LIMIT", "7")
        monkeypatch.setenv("THREADGRAPH_STORAGE_PATH", str(tmp_path / "elsewhere"))

        assert config.get_recursion_limit() == 7
        assert config.get_storage_path() == tmp_path / "elsewhere"

    def test_malformed_file_is_ignored(self, config_file):
        config_file.write_text("{not json")
        assert config.get_threadgraph_config() == {}

    def test_api_key_read_from_named_variable(self, config_file, monkeypatch):
        config_file.write_text(json.dumps({"llm": {"api_key_env_var": "MY_KEY"}}))
        monkeypatch.setenv("MY_KEY", "secret")
        assert config.get_api_key() == "secret"

    def test_runtime_config_picks_up_file(self, config_file):
        config_file.write_text(json.dumps({"execution": {"recursion_limit": 12}}))
        assert config.RuntimeConfig().recursion_limit == 12


# ---- Logging ----
class TestStructuredFormatter:
    def test_includes_trace_context_and_extras(self):
        set_trace_context(session_id="session_abc", node_id="verify", step=3)
        try:
            line = StructuredFormatter().format(
                make_record("\033[32mVerified\033[0m", event="customer_verified", latency_ms=12)
            )
        finally:
            clear_trace_context()

        entry = json.loads(line)
        assert entry["message"] == "Verified"
        assert entry["session_id"] == "session_abc"
        assert entry["node_id"] == "verify"
        assert entry["step"] == 3
        assert entry["event"] == "customer_verified"
        assert entry["latency_ms"] == 12
        assert entry["level"] == "info"

    def test_without_context(self):
        entry = json.loads(StructuredFormatter().format(make_record("plain")))
        assert "session_id" not in entry
        assert entry["logger"] == "threadgraph.test"


class TestHumanReadableFormatter:
    def test_prefix_shows_short_session_and_node(self):
        set_trace_context(session_id="session_20250101_000000_deadbeef", node_id="supervisor")
        try:
            line = HumanReadableFormatter().format(make_record("routing", event="supervisor_route"))
        finally:
            clear_trace_context()

        plain = strip_ansi_codes(line)
        assert "[session:deadbeef | node:supervisor]" in plain
        assert plain.endswith("routing [supervisor_route]")
