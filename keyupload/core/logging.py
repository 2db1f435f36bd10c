"""Structured logging for the key upload engine.

Events are structlog dotted names (``rpc.call_completed``,
``cover_traffic.skipped``) rendered through stdlib logging. Verification codes,
tokens, certificates, keys and phone numbers must never reach a log sink, so
every event passes through :func:`redact_secrets` before rendering.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog
from pythonjsonlogger.json import JsonFormatter

REDACTED = "[redacted]"

SECRET_FIELDS = frozenset(
    {
        "code",
        "verification_code",
        "token",
        "long_term_token",
        "certificate",
        "revision_token",
        "hmac_key",
        "hmac_key_base64",
        "key",
        "keys",
        "nonce",
        "nonce_base64",
        "phone",
        "phone_number",
    }
)


def redact_secrets(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """structlog processor masking values of :data:`SECRET_FIELDS`."""
    for field in SECRET_FIELDS.intersection(event_dict):
        event_dict[field] = REDACTED
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    extra_handler: logging.Handler | None = None,
) -> None:
    """
    Route structlog events through the root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render one JSON object per event instead of console text
        extra_handler: Optional additional handler, such as a file or a test capture
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if extra_handler:
        handlers.append(extra_handler)
    formatter: logging.Formatter = (
        JsonFormatter() if json_output else logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    )
    for handler in handlers:
        handler.setLevel(level)
        if handler.formatter is None:
            handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # Keep httpx request lines out of the way; the transport logs its own events.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, root_logger.level))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
