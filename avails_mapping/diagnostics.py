"""
Diagnostics — structured events emitted while building the output tree.

Data-quality problems (missing required values, badly formatted values,
rows that contradict an earlier definition) are *recoverable*: they are
recorded as :class:`Diagnostic` events and ingestion carries on.  Defects
in the mapping configuration itself raise :class:`UnsupportedMapping`
and abort the pass.

Every event is also forwarded to the standard ``logging`` hierarchy under
``avails_mapping.<module>`` so the usual logging configuration decides
what is shown.
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterator, Optional

from .rows import SourceLocator

LOGGER_PREFIX = "avails_mapping"


class UnsupportedMapping(Exception):
    """Malformed mapping definition, unknown function or bad reference."""


class UnsupportedTemplate(UnsupportedMapping):
    """The sheet's template version cannot be processed."""


class Severity(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL


class Category(str, Enum):
    MISSING_REQUIRED_FIELD = "MissingRequiredField"
    INVALID_FORMAT = "InvalidFormat"
    INCONSISTENT_REDEFINITION = "InconsistentRedefinition"
    REDUNDANT_DEFINITION = "RedundantDefinition"
    UNSUPPORTED_MAPPING = "UnsupportedMapping"


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    category: Category
    message: str
    locator: Optional[SourceLocator] = None
    module: Optional[str] = None
    details: Optional[str] = None

    def format(self) -> str:
        text = f"[{self.category.value}] {self.message}"
        if self.locator is not None:
            text += f" ({self.locator.describe()})"
        if self.details:
            text += f": {self.details}"
        return text


class DiagnosticLog:
    """Collects diagnostics for one ingestion pass and forwards them to logging."""

    def __init__(self):
        self.events: list[Diagnostic] = []

    def emit(self, severity: Severity, category: Category, message: str,
             locator: Optional[SourceLocator] = None,
             module: Optional[str] = None,
             details: Optional[str] = None) -> Diagnostic:
        event = Diagnostic(severity, category, message, locator, module,
                           details)
        self.events.append(event)
        logger = logging.getLogger(f"{LOGGER_PREFIX}.{module or 'core'}")
        logger.log(int(severity), event.format())
        return event

    def error(self, category: Category, message: str, **kw) -> Diagnostic:
        return self.emit(Severity.ERROR, category, message, **kw)

    def info(self, category: Category, message: str, **kw) -> Diagnostic:
        return self.emit(Severity.INFO, category, message, **kw)

    def count(self, category: Optional[Category] = None,
              min_severity: Severity = Severity.DEBUG) -> int:
        return sum(
            1 for e in self.events
            if (category is None or e.category == category)
            and e.severity >= min_severity
        )

    def errors(self) -> list[Diagnostic]:
        return [e for e in self.events if e.severity >= Severity.ERROR]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.events)

    def __len__(self):
        return len(self.events)
