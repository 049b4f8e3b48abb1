"""
Provenance — which input cell each generated node came from.

The tracker is keyed on node identity (and optionally an attribute
name), so two structurally equal nodes are still tracked separately.
``locate`` walks up the tree to the nearest recorded ancestor, which is
how a defect found anywhere in the output is traced back to a row and
column.

``write_provenance_report`` persists the map to an Excel workbook.
"""

from collections import defaultdict
from typing import Iterator, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .nodes import OutputNode
from .rows import Cell, Node, Pedigree, SourceLocator


class ProvenanceTracker:
    """Maps output nodes (and node attributes) to their :class:`Pedigree`."""

    def __init__(self):
        self._entries: dict[tuple[OutputNode, Optional[str]], Pedigree] = {}

    def record(self, node: OutputNode, pedigree: Pedigree,
               attribute: Optional[str] = None) -> None:
        self._entries[(node, attribute)] = pedigree

    def lookup(self, node: OutputNode,
               attribute: Optional[str] = None) -> Optional[Pedigree]:
        return self._entries.get((node, attribute))

    def locate(self, node: OutputNode) -> Optional[SourceLocator]:
        """Source of *node*, or of its nearest recorded ancestor."""
        current = node
        while current is not None:
            ped = self._entries.get((current, None))
            if ped is not None and ped.source is not None:
                return ped.source
            current = current.parent
        return None

    def entries(self) -> Iterator[tuple[OutputNode, Optional[str], Pedigree]]:
        for (node, attribute), ped in self._entries.items():
            yield node, attribute, ped

    def __len__(self):
        return len(self._entries)

    def __contains__(self, node: OutputNode) -> bool:
        return (node, None) in self._entries


# ---------------------------------------------------------------------------
# Excel report
# ---------------------------------------------------------------------------

def _locator_cells(source: Optional[SourceLocator]) -> tuple:
    """(row, column, path) columns for a locator."""
    if isinstance(source, Cell):
        return source.row, source.column, ""
    if isinstance(source, Node):
        return "", "", source.path
    return "", "", ""


def write_provenance_report(tracker: ProvenanceTracker, output_path: str,
                            root: Optional[OutputNode] = None) -> str:
    """Write the provenance map to an Excel file.

    Creates sheets:
      * **Overview** — one row per source column with the number of
        generated values and the rows they came from
      * **Values** — one row per recorded node or attribute

    Only nodes attached under *root* are written when *root* is given;
    values for discarded (redundant) rows are left out.
    """
    attached = None
    if root is not None:
        attached = {id(n) for n in root.iter()}

    values = []
    per_column: dict[str, set] = defaultdict(set)
    counts: dict[str, int] = defaultdict(int)
    for node, attribute, ped in tracker.entries():
        if attached is not None and id(node) not in attached:
            continue
        row, column, path = _locator_cells(ped.source)
        element = node.path() + (f"/@{attribute}" if attribute else "")
        values.append((element, ped.raw_value, row, column, path))
        if column:
            per_column[column].add(row)
            counts[column] += 1

    wb = Workbook()
    if "Sheet" in wb.sheetnames:
        del wb["Sheet"]

    # --- Overview ---
    ws = wb.create_sheet("Overview")
    headers = ["Column", "Values", "Rows"]
    for ci, h in enumerate(headers, 1):
        ws.cell(row=1, column=ci, value=h).font = Font(bold=True)
    for ri, column in enumerate(sorted(counts), 2):
        rows = sorted(per_column[column])
        ws.cell(row=ri, column=1, value=column)
        ws.cell(row=ri, column=2, value=counts[column])
        ws.cell(row=ri, column=3, value=", ".join(str(r) for r in rows))
    for ci in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(ci)].width = 30

    # --- Values ---
    ws = wb.create_sheet("Values")
    headers = ["Element", "Value", "Row", "Column", "Path"]
    for ci, h in enumerate(headers, 1):
        ws.cell(row=1, column=ci, value=h).font = Font(bold=True)
    for ri, rec in enumerate(values, 2):
        for ci, v in enumerate(rec, 1):
            ws.cell(row=ri, column=ci, value=v)
    for ci, width in enumerate([60, 40, 8, 30, 30], 1):
        ws.column_dimensions[get_column_letter(ci)].width = width

    wb.save(output_path)
    return output_path
