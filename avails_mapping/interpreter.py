"""
Mapping interpreter — walks a :class:`~avails_mapping.definitions.Nested`
definition against one row and builds the corresponding output subtree.

The walk is a plain recursive descent that preserves definition order:

  * ``ColumnRef``  → one leaf (or attribute) holding the cell value;
    an empty, non-required value produces nothing.
  * ``Nested``     → a container; dropped when nothing inside it was
    produced, unless the element is required.
  * ``Sequence``   → every entry is processed and all results appended.
  * ``Function``   → dispatched to the builtin library.
  * ``Reference``  → resolved from the root of the current schema
    version's mappings and processed in place.

Every leaf is recorded with the provenance tracker.
"""

from typing import Optional

from .definitions import (
    ColumnRef,
    Function,
    Nested,
    Reference,
    Sequence,
    MappingValue,
)
from .diagnostics import Category, DiagnosticLog
from .formats import FormatError, format_typed
from .functions import BUILTINS
from .nodes import OutputNode, new_node
from .provenance import ProvenanceTracker
from .rows import Pedigree, Row

MODULE = "interpreter"


class Invocation:
    """What a builtin function sees: its row, args and node helpers."""

    def __init__(self, interpreter: "MappingInterpreter", tag: str,
                 args, row: Row, parent: OutputNode):
        self.interpreter = interpreter
        self.tag = tag
        self.args = args
        self.row = row
        self.parent = parent

    @property
    def config(self):
        return self.interpreter.config

    def value(self, column: str) -> Pedigree:
        return self.row.get(column)

    def leaf(self, qname: str, pedigree: Optional[Pedigree],
             text: Optional[str] = None) -> OutputNode:
        return self.interpreter.leaf(qname, pedigree, text)

    def container(self, qname: str) -> OutputNode:
        return new_node(qname)

    def record(self, node: OutputNode, pedigree: Pedigree) -> None:
        self.interpreter.tracker.record(node, pedigree)

    def invalid(self, pedigree: Pedigree, message: str) -> None:
        self.interpreter.invalid_format(pedigree, message)

    def missing_if_required(self, qname: str,
                            pedigree: Pedigree) -> list[OutputNode]:
        return self.interpreter.missing(qname, pedigree)


class MappingInterpreter:
    """Builds output subtrees from mapping definitions.

    Parameters
    ----------
    config : SchemaVersionConfig
        The schema version in force; supplies the mapping root used for
        references, required elements and typed elements.
    tracker : ProvenanceTracker
        Receives a record for every generated value.
    log : DiagnosticLog
        Receives data-quality diagnostics.
    """

    def __init__(self, config, tracker: ProvenanceTracker,
                 log: DiagnosticLog):
        self.config = config
        self.tracker = tracker
        self.log = log

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def interpret(self, definition: Nested, row: Row,
                  tag: str = "avails:Metadata") -> OutputNode:
        """Build the subtree for *definition* under a new *tag* node."""
        node = new_node(tag)
        self._fill(node, definition, row)
        return node

    def merge_functions(self, definition: Nested, row: Row,
                        node: OutputNode, names=("contentRating",)) -> None:
        """Re-run only the named functions of *definition* into *node*,
        a subtree built from an earlier row.

        New nodes are inserted at their definition-order position.
        """
        order = [e.name for e in definition.entries]
        for entry in definition.entries:
            self._merge(node, entry.tag, entry.value, row, names, order)

    def _merge(self, node, tag, value, row, names, order):
        if isinstance(value, Reference):
            value = self.config.mappings.resolve(value.path)
        if isinstance(value, Sequence):
            for v in value.values:
                self._merge(node, tag, v, row, names, order)
        elif isinstance(value, Function) and value.name in names:
            spec = BUILTINS[value.name]
            for new in spec.fn(Invocation(self, tag, value.args, row, node)):
                _insert_ordered(node, new, order)
        elif isinstance(value, Nested):
            target = node.child(tag.split(":")[-1])
            if target is not None:
                self.merge_functions(value, row, target, names)

    # ------------------------------------------------------------------
    # Recursive descent
    # ------------------------------------------------------------------

    def _fill(self, parent: OutputNode, definition: Nested, row: Row) -> None:
        for entry in definition.entries:
            self._apply(parent, entry.tag, entry.value, row)

    def _apply(self, parent: OutputNode, tag: str, value: MappingValue,
               row: Row) -> None:
        if isinstance(value, ColumnRef):
            if tag.startswith("@"):
                self._attribute(parent, tag[1:], value, row)
            else:
                for node in self._column(tag, value, row):
                    parent.append(node)
        elif isinstance(value, Nested):
            container = new_node(tag)
            self._fill(container, value, row)
            if not container.is_empty() or self.config.is_required(tag):
                if container.is_empty():
                    self.missing(tag, Pedigree("", None))
                parent.append(container)
        elif isinstance(value, Sequence):
            for v in value.values:
                self._apply(parent, tag, v, row)
        elif isinstance(value, Function):
            self._call(parent, tag, value, row)
        elif isinstance(value, Reference):
            self._apply(parent, tag, self.config.mappings.resolve(value.path),
                        row)

    def _call(self, parent, tag, fn: Function, row) -> None:
        spec = BUILTINS[fn.name]
        for node in spec.fn(Invocation(self, tag, fn.args, row, parent)):
            parent.append(node)

    def _column(self, tag: str, ref: ColumnRef, row: Row) -> list[OutputNode]:
        ped = row.get(ref.column)
        if ped.is_empty():
            if ref.required:
                return self.placeholder(tag, ped, ref.column)
            return self.missing(tag, ped)
        return [self.leaf(tag, ped, self.typed_value(tag, ped))]

    def _attribute(self, parent, name, ref: ColumnRef, row) -> None:
        ped = row.get(ref.column)
        if ped.is_empty():
            return
        parent.set(name, ped.raw_value)
        self.tracker.record(parent, ped, attribute=name)

    # ------------------------------------------------------------------
    # Helpers shared with the row strategies
    # ------------------------------------------------------------------

    def leaf(self, qname: str, pedigree: Optional[Pedigree],
             text: Optional[str] = None) -> OutputNode:
        if text is None and pedigree is not None:
            text = pedigree.raw_value
        node = new_node(qname, text)
        if pedigree is not None:
            self.tracker.record(node, pedigree)
        return node

    def typed_value(self, qname: str, pedigree: Pedigree) -> str:
        """Apply the ``xs:`` type declared for *qname*, if any."""
        xs_type = self.config.type_of(qname)
        if xs_type is None:
            return pedigree.raw_value
        try:
            return format_typed(pedigree.raw_value, xs_type)
        except FormatError as e:
            self.invalid_format(pedigree, str(e))
            return pedigree.raw_value

    def missing(self, qname: str, pedigree: Pedigree) -> list[OutputNode]:
        """Empty value: nothing unless *qname* is required by the schema."""
        if not self.config.is_required(qname):
            return []
        return self.placeholder(qname, pedigree, None)

    def placeholder(self, qname, pedigree, column=None) -> list[OutputNode]:
        what = f"'{column}'" if column else "value"
        self.log.error(
            Category.MISSING_REQUIRED_FIELD,
            f"Missing {what} for required element {qname}",
            locator=pedigree.source, module=MODULE,
        )
        node = new_node(qname, "")
        if pedigree.source is not None:
            self.tracker.record(node, pedigree)
        return [node]

    def invalid_format(self, pedigree: Pedigree, message: str,
                       module: str = MODULE) -> None:
        self.log.error(Category.INVALID_FORMAT, message,
                       locator=pedigree.source, module=module,
                       details=f"value '{pedigree.raw_value}'")


def _insert_ordered(parent: OutputNode, node: OutputNode,
                    order: list[str]) -> None:
    """Insert *node* before the first sibling that follows it in *order*."""
    if node.tag not in order:
        parent.append(node)
        return
    rank = order.index(node.tag)
    for i, sibling in enumerate(parent.children):
        if sibling.tag in order and order.index(sibling.tag) > rank:
            parent.insert(i, node)
            return
    parent.append(node)
