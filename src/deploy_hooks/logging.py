"""
Structured logging configuration for Deploy Hooks.

Log events never carry client secrets or full signatures: the
:class:`SecretRedactionProcessor` masks them before rendering.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union, cast

import structlog
from structlog.types import FilteringBoundLogger


class SecretRedactionProcessor:
    """
    Structlog processor that masks sensitive values.

    Values of keys that look like credentials are replaced by a short
    placeholder so that log files can be shared without leaking secrets.
    """

    SENSITIVE_KEYS = {
        "secret",
        "signature",
        "authorization",
        "password",
        "token",
    }

    def __call__(
        self, logger: FilteringBoundLogger, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        for key in list(event_dict.keys()):
            if key.lower() in self.SENSITIVE_KEYS and event_dict[key] is not None:
                event_dict[key] = self._mask(event_dict[key])
        return event_dict

    @staticmethod
    def _mask(value: Any) -> str:
        text = str(value)
        if text.startswith("sha256=") and len(text) > 15:
            # Keep the digest prefix so mismatches can still be correlated.
            return text[:15] + "..."
        return "[REDACTED]"


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    Set up structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format (json, console)
        log_file: Optional log file path
    """
    level = getattr(logging, log_level.upper())

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        SecretRedactionProcessor(),
    ]

    if log_format == "json":
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        processors.extend([structlog.dev.ConsoleRenderer(colors=False)])

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return cast(FilteringBoundLogger, structlog.get_logger(name))
