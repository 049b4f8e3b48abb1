"""
Mapping definitions — the declarative, per-schema-version description of
how sheet columns become output elements.

Definitions are written in YAML (``mappings/metadata.yaml``) and parsed
once into an immutable tagged-union AST:

  * ``"Section/Field"``            → :class:`ColumnRef`
  * ``{"%COLUMN": {col, required}}`` → :class:`ColumnRef` (explicitly required)
  * ``"#REF:Entity/Tag"``          → :class:`Reference`
  * ``{"%FUNCTION": {name, args}}`` → :class:`Function`
  * a list                         → :class:`Sequence`
  * any other mapping              → :class:`Nested`

Keys are output tags (``avails:Tag``, ``md:Tag``, ``mdmec:Tag`` or
``@attribute``); key order is output order.  Everything that can be
checked without a row is checked at load time (unknown functions,
missing arguments, bad tags, unresolvable or cyclic references), so a
broken definition fails before the first row is read.
"""

import os
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

import networkx as nx
import yaml

from .diagnostics import UnsupportedMapping
from .formats import TYPED_KINDS
from .functions import BUILTINS

MAPPINGS_PATH = os.path.join(os.path.dirname(__file__), "mappings",
                             "metadata.yaml")

REF_PREFIX = "#REF:"
FUNCTION_KEY = "%FUNCTION"
COLUMN_KEY = "%COLUMN"
NAMESPACE_PREFIXES = ("avails", "md", "mdmec")

_TAG_RE = re.compile(
    r"^(@[A-Za-z_][\w.-]*|((avails|md|mdmec):)?[A-Za-z_][\w.-]*)$"
)


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnRef:
    column: str
    required: bool = False


@dataclass(frozen=True)
class Reference:
    path: str


@dataclass(frozen=True)
class Function:
    name: str
    args: Mapping[str, str]


@dataclass(frozen=True)
class Sequence:
    values: tuple


@dataclass(frozen=True)
class Entry:
    tag: str
    value: "MappingValue"

    @property
    def is_attribute(self) -> bool:
        return self.tag.startswith("@")

    @property
    def name(self) -> str:
        """Local name (no prefix, no ``@``)."""
        return self.tag.lstrip("@").split(":")[-1]

    @property
    def ns(self) -> Optional[str]:
        if ":" in self.tag:
            return self.tag.split(":", 1)[0]
        return None


@dataclass(frozen=True)
class Nested:
    entries: tuple

    def entry(self, tag: str) -> Optional[Entry]:
        for e in self.entries:
            if e.tag == tag or e.name == tag:
                return e
        return None


MappingValue = Union[ColumnRef, Reference, Function, Sequence, Nested]

# A definition for one entity is simply its top-level Nested node.
MappingDefinition = Nested


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_value(raw: Any, where: str) -> MappingValue:
    """Parse one YAML value into the AST, validating as we go."""
    if isinstance(raw, str):
        if raw.startswith(REF_PREFIX):
            path = raw[len(REF_PREFIX):].strip()
            if not path:
                raise UnsupportedMapping(f"{where}: empty reference path")
            return Reference(path)
        if not raw.strip():
            raise UnsupportedMapping(f"{where}: empty column reference")
        return ColumnRef(raw.strip())

    if isinstance(raw, list):
        if not raw:
            raise UnsupportedMapping(f"{where}: empty sequence")
        return Sequence(tuple(parse_value(v, f"{where}[{i}]")
                              for i, v in enumerate(raw)))

    if isinstance(raw, dict):
        if FUNCTION_KEY in raw:
            return _parse_function(raw, where)
        if COLUMN_KEY in raw:
            spec = raw[COLUMN_KEY] or {}
            col = spec.get("col") if isinstance(spec, dict) else None
            if not col:
                raise UnsupportedMapping(f"{where}: %COLUMN needs a 'col'")
            return ColumnRef(str(col), bool(spec.get("required", False)))
        return parse_nested(raw, where)

    raise UnsupportedMapping(
        f"{where}: unsupported mapping value {raw!r} ({type(raw).__name__})"
    )


def parse_nested(raw: dict, where: str) -> Nested:
    if not raw:
        raise UnsupportedMapping(f"{where}: empty mapping")
    entries = []
    for tag, value in raw.items():
        tag = str(tag)
        if not _TAG_RE.match(tag):
            raise UnsupportedMapping(f"{where}: invalid element name '{tag}'")
        parsed = parse_value(value, f"{where}/{tag}")
        if tag.startswith("@") and not isinstance(parsed, ColumnRef):
            raise UnsupportedMapping(
                f"{where}/{tag}: attributes must map to a column"
            )
        entries.append(Entry(tag, parsed))
    return Nested(tuple(entries))


def _parse_function(raw: dict, where: str) -> Function:
    if len(raw) != 1:
        raise UnsupportedMapping(f"{where}: %FUNCTION must be the only key")
    body = raw[FUNCTION_KEY]
    if not isinstance(body, dict) or "name" not in body:
        raise UnsupportedMapping(f"{where}: %FUNCTION needs a 'name'")
    name = body["name"]
    args = {str(k): str(v) for k, v in (body.get("args") or {}).items()}

    spec = BUILTINS.get(name)
    if spec is None:
        raise UnsupportedMapping(f"{where}: unknown function '{name}'")
    missing = [a for a in spec.required if a not in args]
    if missing:
        raise UnsupportedMapping(
            f"{where}: function '{name}' missing argument(s) {missing}"
        )
    unknown = [a for a in args if a not in spec.required + spec.optional]
    if unknown:
        raise UnsupportedMapping(
            f"{where}: function '{name}' got unknown argument(s) {unknown}"
        )
    if name == "formatType" and args["type"].split(":")[-1] not in TYPED_KINDS:
        raise UnsupportedMapping(
            f"{where}: formatType does not support type '{args['type']}'"
        )
    return Function(name, MappingProxyType(args))


# ---------------------------------------------------------------------------
# Per-version root
# ---------------------------------------------------------------------------

class MappingRoot:
    """All entity definitions for one schema version."""

    def __init__(self, schema_version: str, entities: dict[str, Nested]):
        self.schema_version = schema_version
        self._entities = dict(entities)
        self._check_references()

    def __getitem__(self, entity: str) -> Nested:
        try:
            return self._entities[entity]
        except KeyError:
            raise UnsupportedMapping(
                f"No mapping for '{entity}' in schema {self.schema_version}"
            ) from None

    def __contains__(self, entity: str) -> bool:
        return entity in self._entities

    @property
    def entities(self) -> list[str]:
        return list(self._entities)

    def resolve(self, path: str) -> MappingValue:
        """Resolve ``Entity[/Tag/...]`` from the root of this version."""
        steps = [s for s in path.split("/") if s]
        if not steps or steps[0] not in self._entities:
            raise UnsupportedMapping(
                f"Unresolvable reference '{path}' in schema "
                f"{self.schema_version}"
            )
        value: MappingValue = self._entities[steps[0]]
        for step in steps[1:]:
            entry = value.entry(step) if isinstance(value, Nested) else None
            if entry is None:
                raise UnsupportedMapping(
                    f"Unresolvable reference '{path}' in schema "
                    f"{self.schema_version}"
                )
            value = entry.value
        return value

    def _check_references(self) -> None:
        graph = nx.DiGraph()
        for name, definition in self._entities.items():
            graph.add_node(name)
            for ref in _references(definition):
                self.resolve(ref.path)
                graph.add_edge(name, ref.path.split("/")[0])
        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            return
        chain = " -> ".join(edge[0] for edge in cycle) + f" -> {cycle[0][0]}"
        raise UnsupportedMapping(
            f"Cyclic reference in schema {self.schema_version}: {chain}"
        )


def _references(value: MappingValue):
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, Sequence):
        for v in value.values:
            yield from _references(v)
    elif isinstance(value, Nested):
        for e in value.entries:
            yield from _references(e.value)


def parse_mapping_root(schema_version: str, raw: dict) -> MappingRoot:
    if not isinstance(raw, dict) or not raw:
        raise UnsupportedMapping(
            f"Mapping definition for schema {schema_version} is empty"
        )
    entities = {
        str(name): parse_nested(body, f"{schema_version}:{name}")
        if isinstance(body, dict) else _not_a_mapping(schema_version, name)
        for name, body in raw.items()
    }
    return MappingRoot(schema_version, entities)


def _not_a_mapping(schema_version, name):
    raise UnsupportedMapping(
        f"{schema_version}:{name}: entity definition must be a mapping"
    )


def load_mapping_root(schema_version: str,
                      path: Optional[str] = None) -> MappingRoot:
    """Load and validate the definitions for *schema_version* from YAML."""
    with open(path or MAPPINGS_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    versions = data.get("versions", {})
    if schema_version not in versions:
        raise UnsupportedMapping(
            f"No mapping definitions for schema version {schema_version}"
        )
    return parse_mapping_root(schema_version, versions[schema_version])
