"""
Structured logging configuration for Listing Enhancer.

Pipeline modules log through ``logging.getLogger(__name__)``; every record
passes through structlog's ProcessorFormatter on the root handler, picking
up the product being processed from context variables. Output goes to
stderr so the command-line tool can keep stdout for its JSON results.

Rendering:
    - development/test: coloured console lines
    - staging/production (or ``log_format="json"``): one JSON object per line
"""

import logging
import sys

import structlog

from listing_enhancer.config import AppEnv

SERVICE_NAME = "listing-enhancer"
PRODUCT_CONTEXT_KEYS = ("product_id", "marketplace")
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(
    app_env: AppEnv,
    log_level: str = "INFO",
    log_format: str = "auto",
) -> None:
    """
    Route all pipeline logging through structlog.

    Args:
        app_env: Current environment.
        log_level: Root logger level name. Unknown names fall back to INFO.
        log_format: ``"json"``, ``"console"`` or ``"auto"``
                    (auto = JSON for staging/production, console otherwise).
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=_renderer(app_env, log_format),
        foreign_pre_chain=pre_chain,
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(log_level.upper()) if _is_level(log_level) else logging.INFO)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_product_context(product_id: str, marketplace: str) -> None:
    """Tag every log line in the current task with the product being processed."""
    structlog.contextvars.bind_contextvars(product_id=product_id, marketplace=marketplace)


def clear_product_context() -> None:
    structlog.contextvars.unbind_contextvars(*PRODUCT_CONTEXT_KEYS)


def _add_service(logger, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(app_env: AppEnv, log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        use_json = True
    elif log_format == "console":
        use_json = False
    else:
        use_json = app_env in (AppEnv.STAGING, AppEnv.PRODUCTION)

    if use_json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _is_level(name: str) -> bool:
    return isinstance(logging.getLevelName(name.upper()), int)
