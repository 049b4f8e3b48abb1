"""
Ingestion pass — rows in, one finished ``AvailList`` tree out.

Rows are processed one at a time, in source order.  Each pass owns its
own registry, provenance tracker and diagnostics log; nothing is shared
between passes, so independent sheets may be ingested in parallel with
separate :class:`AvailsIngester` calls.

A configuration defect (:class:`UnsupportedMapping`) aborts the pass
before any output is returned.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .diagnostics import DiagnosticLog
from .finalizer import finalize
from .interpreter import MappingInterpreter
from .nodes import OutputNode, to_element, write_xml
from .provenance import ProvenanceTracker, write_provenance_report
from .registry import EntityRegistry
from .rows import Row
from .strategies import BuildContext, strategy_for
from .versions import SchemaVersionConfig, load_schema_config, resolve_version

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    root: OutputNode
    config: SchemaVersionConfig
    provenance: ProvenanceTracker
    diagnostics: DiagnosticLog
    rows_processed: int = 0

    def to_element(self):
        return to_element(self.root, dict(self.config.namespaces))

    def write_xml(self, output_path: str) -> str:
        return write_xml(self.root, output_path, dict(self.config.namespaces))

    def write_provenance(self, output_path: str) -> str:
        return write_provenance_report(self.provenance, output_path,
                                       self.root)


class AvailsIngester:
    """Builds the output tree for a sequence of rows.

    Parameters
    ----------
    config : SchemaVersionConfig, optional
        Schema config to use.  When omitted it is derived from the
        sheet's columns (and *template_version*, if given).
    template_version : str, optional
        Explicitly declared template version, e.g. ``"1.7.3"``.
    """

    def __init__(self, config: Optional[SchemaVersionConfig] = None,
                 template_version: Optional[str] = None):
        self.config = config
        self.template_version = template_version

    def resolve_config(self, columns: Iterable[str]) -> SchemaVersionConfig:
        if self.config is not None:
            return self.config
        version = resolve_version(columns, self.template_version)
        logger.info(f"Template version {version.value}")
        return load_schema_config(version)

    def ingest(self, rows: Iterable[Row],
               columns: Optional[Iterable[str]] = None) -> IngestResult:
        rows = list(rows)
        if columns is None:
            seen: dict[str, None] = {}
            for row in rows:
                seen.update(dict.fromkeys(row.columns))
            columns = list(seen)
        config = self.resolve_config(columns)

        tracker = ProvenanceTracker()
        log = DiagnosticLog()
        ctx = BuildContext(
            config=config,
            strategy=strategy_for(config.template_version),
            interpreter=MappingInterpreter(config, tracker, log),
            tracker=tracker,
            log=log,
        )
        registry = EntityRegistry(ctx)

        for row in rows:
            self._process_row(ctx, registry, row)

        root = finalize(registry.assemble(), config)
        logger.info(f"Processed {len(rows)} rows into "
                    f"{len(registry.avails)} Avails and "
                    f"{len(registry.assets)} Assets "
                    f"({len(log.errors())} errors)")
        return IngestResult(root, config, tracker, log, len(rows))

    def _process_row(self, ctx: BuildContext, registry: EntityRegistry,
                     row: Row) -> None:
        avail = registry.get_or_create_avail(row)
        if avail is None:
            return
        registry.get_or_create_asset(row, avail)
        registry.add_transaction(avail,
                                 ctx.strategy.build_transaction(ctx, row))
        for ecosystem, ped in ctx.strategy.build_entitlements(ctx, row):
            registry.add_entitlement(avail, ecosystem, ped)


def ingest_rows(rows: Iterable[Row], template_version: Optional[str] = None,
                columns: Optional[Iterable[str]] = None) -> IngestResult:
    """Convenience wrapper: one pass with a fresh :class:`AvailsIngester`."""
    return AvailsIngester(template_version=template_version).ingest(
        rows, columns)
