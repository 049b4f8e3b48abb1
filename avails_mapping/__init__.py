"""Avails Mapping Engine.

Converts Avails spreadsheets (licensing-availability records, one row
per transaction) into a namespaced Avails document tree:

  * :mod:`registry` – aggregates rows into deduplicated Avails, Assets,
    Transactions and Entitlements, checking cross-row consistency.
  * :mod:`interpreter` – walks the per-schema-version YAML mapping
    definitions (:mod:`definitions`) to build asset metadata, using the
    builtin function library in :mod:`functions`.
  * :mod:`provenance` – links every generated value to its source cell.
  * :mod:`strategies` – one row strategy per template version, each the
    previous version plus a table of overrides.
  * :mod:`finalizer` – post-pass for cross-entity values (volume
    episode counts).

:func:`ingest_rows` / :class:`AvailsIngester` run a full pass;
:mod:`readers` loads ``.xlsx`` / ``.csv`` sheets.
"""

from .diagnostics import (
    Category,
    Diagnostic,
    DiagnosticLog,
    Severity,
    UnsupportedMapping,
    UnsupportedTemplate,
)
from .ingest import AvailsIngester, IngestResult, ingest_rows
from .nodes import OutputNode, to_element, write_xml
from .provenance import ProvenanceTracker, write_provenance_report
from .readers import read_csv, read_sheet, read_xlsx
from .rows import Cell, Node, Pedigree, Row, build_rows
from .versions import (
    SchemaVersionConfig,
    TemplateVersion,
    detect_version,
    load_schema_config,
)

__all__ = [
    "AvailsIngester",
    "IngestResult",
    "ingest_rows",
    "Category",
    "Diagnostic",
    "DiagnosticLog",
    "Severity",
    "UnsupportedMapping",
    "UnsupportedTemplate",
    "OutputNode",
    "to_element",
    "write_xml",
    "ProvenanceTracker",
    "write_provenance_report",
    "read_csv",
    "read_sheet",
    "read_xlsx",
    "Cell",
    "Node",
    "Pedigree",
    "Row",
    "build_rows",
    "SchemaVersionConfig",
    "TemplateVersion",
    "detect_version",
    "load_schema_config",
]
