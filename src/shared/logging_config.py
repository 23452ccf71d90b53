"""
Logging configuration for the dispute webhook relay.

The ledger_watch package logs through structlog, the webhooks package through
the standard library. Both are rendered by one structlog ProcessorFormatter
on the root logger, so every line carries the same fields: timestamp, level,
logger name, and the correlation id of the poll cycle that produced it.
"""

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any, List, Optional, Union
from uuid import uuid4

import structlog
from structlog.types import EventDict, WrappedLogger

# Poll cycle id, set by CorrelationContext
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

RELAY_LOGGERS = ['src.ledger_watch', 'src.webhooks', 'src.shared']

THIRD_PARTY_LEVELS = {
    'aiohttp': logging.WARNING,
    'asyncio': logging.WARNING,
}

REDACTED_KEYS = frozenset({'secret', 'signature', 'authorization'})


def add_correlation_id(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault('correlation_id', correlation_id.get() or 'unknown')
    return event_dict


def redact_secrets(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    """Blank out webhook secrets and signatures passed as log fields."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = '[REDACTED]'
    return event_dict


SHARED_PROCESSORS: List[Any] = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt='iso', utc=True),
    add_correlation_id,
    redact_secrets,
]


class LoggingConfig:
    """Centralized logging configuration."""

    FORMATS = ('json', 'colored', 'standard')

    @classmethod
    def build_formatter(cls, format_type: str) -> structlog.stdlib.ProcessorFormatter:
        """Formatter for the given output format; unknown formats fall back to 'standard'."""
        if format_type == 'json':
            renderer_chain = [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        else:
            renderer_chain = [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=format_type == 'colored'),
            ]

        return structlog.stdlib.ProcessorFormatter(
            processors=renderer_chain,
            foreign_pre_chain=[*SHARED_PROCESSORS, structlog.stdlib.ExtraAdder()],
        )

    @classmethod
    def setup_logging(
        cls,
        level: Union[str, int] = logging.INFO,
        format_type: str = 'json',
        log_file: Optional[str] = None,
        console_output: bool = True,
    ):
        """
        Install handlers on the root logger and route structlog through them.

        Args:
            level: Logging level
            format_type: 'json', 'colored', or 'standard' for the console
            log_file: Optional log file path (always JSON)
            console_output: Enable console output
        """
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(cls.build_formatter(format_type))
            root_logger.addHandler(console_handler)

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(cls.build_formatter('json'))
            root_logger.addHandler(file_handler)

        for name in RELAY_LOGGERS:
            logging.getLogger(name).setLevel(level)
        for name, third_party_level in THIRD_PARTY_LEVELS.items():
            logging.getLogger(name).setLevel(third_party_level)

        cls.configure_structlog()

        structlog.get_logger(__name__).info(
            "Logging system initialized",
            level=logging.getLevelName(level),
            format_type=format_type,
            log_file=log_file,
        )

    @staticmethod
    def configure_structlog():
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *SHARED_PROCESSORS,
                structlog.processors.StackInfoRenderer(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )


class CorrelationContext:
    """Binds a correlation id to every log line emitted inside the block."""

    def __init__(self, correlation_id_value: Optional[str] = None):
        self.correlation_id_value = correlation_id_value or str(uuid4())
        self.token = None

    def __enter__(self):
        self.token = correlation_id.set(self.correlation_id_value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            correlation_id.reset(self.token)
            self.token = None


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


def setup_logging_from_settings(settings) -> None:
    """Configure logging from a Settings instance."""
    monitoring = settings.monitoring
    LoggingConfig.setup_logging(
        level=monitoring.log_level.value,
        format_type=monitoring.log_format,
        log_file=monitoring.log_file,
    )
