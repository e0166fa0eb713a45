"""structlog setup for the broker process.

Every entry carries the request's correlation ID when there is one.
Credential fields are masked unless ``LoggingConfig.debug`` is set, so
bind responses and ledger records can be logged safely. The debug toggle
itself lives on :class:`LoggingConfig` and is passed to the orchestrator
and the catalog loader.
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from dataclasses import dataclass

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_SECRET_FIELDS = frozenset({"credentials", "password", "token", "manifest"})
_MASK = "***"

_configured = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging settings shared by the app factory and the orchestrator.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Emit JSON lines instead of console output.
        debug: Emit verbose diagnostics (rendered manifests, catalog
            tracking) and stop masking credential fields. Rendered
            manifests contain secrets, so this must stay off in production.
    """

    level: str = "INFO"
    json_output: bool = True
    debug: bool = False

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> LoggingConfig:
        if env is None:
            env = dict(os.environ)
        debug = bool(env.get("BLACKSMITH_DEBUG", ""))
        return cls(
            level=env.get("LOG_LEVEL", "DEBUG" if debug else "INFO"),
            json_output=env.get("LOG_FORMAT", "json") == "json",
            debug=debug,
        )


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _mask_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key in _SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = _MASK
    return event_dict


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog and stdlib logging once per process."""
    global _configured
    if _configured:
        return
    _configured = True

    config = config or LoggingConfig.from_env()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
    ]
    if not config.debug:
        shared_processors.append(_mask_secrets)
    shared_processors += [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if config.json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    # The broker logs its own requests and upstream calls.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
