"""
structlog setup for the agent service.

Every event carries the Stacks network and whether the wallet is mocked, and
values under secret-bearing keys (mnemonic, private keys, API keys) are masked
before rendering. Standard-library loggers used by the providers and adapters
go through the same processor chain.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog

from .config import settings

REDACTED = "***"
SECRET_KEY_FRAGMENTS = ("mnemonic", "private_key", "secret", "api_key", "authorization")

# Chatty at INFO: per-request HTTP client lines, SDK retries, graph internals
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "anthropic", "langgraph")


def redact_secrets(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask values whose key names a secret."""
    for key in list(event_dict):
        if any(fragment in key.lower() for fragment in SECRET_KEY_FRAGMENTS):
            event_dict[key] = REDACTED
    return event_dict


def add_service_context(_logger: Any, _method: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("network", settings.stacks_network.lower())
    event_dict.setdefault("mock_mode", settings.mock_mode)
    return event_dict


def _use_console(level: int, log_format: str) -> bool:
    log_format = log_format.lower()
    if log_format == "console":
        return True
    if log_format == "json":
        return False
    return level == logging.DEBUG


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Override log level (default: settings.log_level)
        log_format: ``json``, ``console`` or ``auto`` (default: settings.log_format)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if _use_console(level, log_format or settings.log_format):
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
