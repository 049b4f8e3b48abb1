"""
Row model — the ``row → (column-key → value)`` abstraction the engine reads.

Column keys are two-part ``"Section/Field"`` strings built from the two
header rows of an Avails sheet.  Every value handed out by a row is a
:class:`Pedigree`: the stripped cell text plus the :data:`SourceLocator`
that says where it came from.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union


# ---------------------------------------------------------------------------
# Source locators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Cell:
    """A spreadsheet cell addressed by 1-based row and column key."""

    row: int
    column: str

    def describe(self) -> str:
        return f"row {self.row}, column '{self.column}'"


@dataclass(frozen=True)
class Node:
    """A location inside a structured (tree-shaped) source document."""

    path: str

    def describe(self) -> str:
        return f"node {self.path}"


SourceLocator = Union[Cell, Node]


@dataclass(frozen=True)
class Pedigree:
    """A raw value together with where it came from."""

    raw_value: str
    source: Optional[SourceLocator] = None

    def is_empty(self) -> bool:
        return self.raw_value == ""

    def split(self, sep: str = ",") -> list[str]:
        """Split the raw value on *sep*, dropping blank items."""
        return [p.strip() for p in self.raw_value.split(sep) if p.strip()]


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

class Row:
    """One data row of an Avails sheet.

    ``get`` never raises: a column the sheet does not define resolves to
    an empty :class:`Pedigree`.  Use ``has`` to tell the two apart.
    """

    def __init__(self, row_number: int, values: dict[str, Any],
                 sheet: str = ""):
        self.row_number = row_number
        self.sheet = sheet
        self._values = {k: _text(v) for k, v in values.items()}

    @property
    def columns(self) -> list[str]:
        return list(self._values)

    def has(self, column: str) -> bool:
        return column in self._values

    def get(self, column: str) -> Pedigree:
        if column not in self._values:
            return Pedigree("", None)
        return Pedigree(self._values[column], Cell(self.row_number, column))

    def value(self, column: str) -> str:
        return self._values.get(column, "")

    def __repr__(self):
        return f"Row({self.row_number}, {len(self._values)} columns)"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_skipped_row(first_cell: Any) -> bool:
    """Rows with an empty first cell or a ``//`` comment marker are ignored."""
    text = _text(first_cell)
    return text == "" or text.startswith("//")


def build_rows(records: Iterable[dict[str, Any]], first_row: int = 3,
               sheet: str = "") -> list[Row]:
    """Wrap plain ``{column-key: value}`` dicts as :class:`Row` objects.

    Row numbers start at *first_row* (data in an Avails sheet begins
    below the two header rows).
    """
    return [Row(first_row + i, rec, sheet=sheet)
            for i, rec in enumerate(records)]


@dataclass
class AvailsSheet:
    """A parsed sheet: its ordered column keys and data rows."""

    name: str
    columns: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
