import logging

import pytest

from stacks_agent import logging_config
from stacks_agent.logging_config import QUIET_LOGGERS, REDACTED, redact_secrets, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_secret_values_are_masked():
    event = redact_secrets(
        None,
        "info",
        {
            "event": "wallet_loaded",
            "wallet_mnemonic": "abandon abandon about",
            "hiro_api_key": "hk-123",
            "Authorization": "Bearer x",
            "address": "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7",
        },
    )

    assert event["wallet_mnemonic"] == REDACTED
    assert event["hiro_api_key"] == REDACTED
    assert event["Authorization"] == REDACTED
    assert event["address"] == "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"


def test_setup_quiets_client_and_graph_loggers():
    setup_logging("DEBUG", "json")

    assert logging.getLogger().level == logging.DEBUG
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
    assert "langgraph" in QUIET_LOGGERS and "anthropic" in QUIET_LOGGERS


def test_json_output_carries_network(capsys, monkeypatch):
    monkeypatch.setattr(logging_config.settings, "stacks_network", "testnet")
    setup_logging("INFO", "json")

    logging.getLogger("stacks_agent.test").info("plain stdlib line")
    out = capsys.readouterr().out

    assert '"network": "testnet"' in out
    assert '"event": "plain stdlib line"' in out


def test_console_format_is_chosen_at_debug_in_auto_mode():
    assert logging_config._use_console(logging.DEBUG, "auto")
    assert not logging_config._use_console(logging.INFO, "auto")
    assert logging_config._use_console(logging.INFO, "console")
    assert not logging_config._use_console(logging.DEBUG, "JSON")
