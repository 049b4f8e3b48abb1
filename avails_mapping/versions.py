"""
Template versions, version detection and the per-version schema config.

A sheet's template version is either declared by the caller or inferred
from marker columns.  The chosen version fixes one immutable
:class:`SchemaVersionConfig` (namespaces, required and typed elements,
mapping definitions, rating-system data) which is passed explicitly
to every component of an ingestion pass.
"""

import os
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import yaml

from .definitions import MappingRoot, load_mapping_root
from .diagnostics import UnsupportedTemplate

SCHEMAS_PATH = os.path.join(os.path.dirname(__file__), "schemas.yaml")


class TemplateVersion(Enum):
    V1_6 = "1.6"
    V1_7 = "1.7"
    V1_7_2 = "1.7.2"
    V1_7_3 = "1.7.3"
    V1_8 = "1.8"
    UNK = "unknown"

    @classmethod
    def parse(cls, text: str) -> "TemplateVersion":
        """Accept ``1.7.3``, ``v1.7.3`` or ``V1_7_3``."""
        key = str(text).strip().lower().lstrip("v").replace("_", ".")
        for v in cls:
            if v.value == key:
                return v
        return cls.UNK

    @property
    def supported(self) -> bool:
        return self in SUPPORTED_VERSIONS

    def __lt__(self, other):
        return _ORDER.index(self) < _ORDER.index(other)

    def __le__(self, other):
        return self == other or self < other


_ORDER = [TemplateVersion.V1_6, TemplateVersion.V1_7, TemplateVersion.V1_7_2,
          TemplateVersion.V1_7_3, TemplateVersion.V1_8, TemplateVersion.UNK]

SUPPORTED_VERSIONS = (
    TemplateVersion.V1_7,
    TemplateVersion.V1_7_2,
    TemplateVersion.V1_7_3,
    TemplateVersion.V1_8,
)

# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

V1_8_MARKERS = ("AvailTrans/Bonus", "AvailAsset/PackageLabel",
                "AvailAsset/VolumeNumber")
V1_7_3_MARKERS = ("Avail/Licensee", "AvailTrans/TerritoryExclusion",
                  "AvailTrans/WindowDuration")
ALT_ID_MARKERS = ("AvailAsset/AltID", "AvailMetadata/EpisodeAltID")


def detect_version(columns: Iterable[str]) -> TemplateVersion:
    """Infer the template version from which columns a sheet defines."""
    cols = set(columns)
    if any(c in cols for c in V1_8_MARKERS):
        return TemplateVersion.V1_8
    if any(c in cols for c in V1_7_3_MARKERS):
        return TemplateVersion.V1_7_3
    has_alid = "Avail/ALID" in cols
    has_alt_id = any(c in cols for c in ALT_ID_MARKERS)
    if has_alid and has_alt_id:
        return TemplateVersion.V1_7_2
    if has_alid:
        return TemplateVersion.V1_7
    if has_alt_id:
        return TemplateVersion.V1_6
    return TemplateVersion.UNK


def resolve_version(columns: Iterable[str],
                    declared: Optional[str] = None) -> TemplateVersion:
    """Detect the version and reconcile it with an explicit declaration.

    Raises
    ------
    UnsupportedTemplate
        For a deprecated or unrecognised template, or when the declared
        version disagrees with the columns present.
    """
    detected = detect_version(columns)
    if declared:
        wanted = TemplateVersion.parse(declared)
        if wanted == TemplateVersion.UNK:
            raise UnsupportedTemplate(
                f"Unrecognized template version '{declared}'"
            )
        if wanted != detected:
            raise UnsupportedTemplate(
                f"Sheet declares template version {wanted.value} but its "
                f"columns indicate {detected.value}"
            )
    if detected == TemplateVersion.V1_6:
        raise UnsupportedTemplate(
            "Template version 1.6 is deprecated and no longer supported"
        )
    if detected == TemplateVersion.UNK:
        raise UnsupportedTemplate(
            "Unable to identify the template version of the sheet"
        )
    return detected


# ---------------------------------------------------------------------------
# Schema config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SchemaVersionConfig:
    template_version: TemplateVersion
    schema_version: str
    namespaces: Mapping[str, str]
    required: frozenset
    typed: Mapping[str, str]
    mappings: MappingRoot
    rating_systems: Mapping[str, bool]
    volumes: bool = False

    def is_required(self, qname: str) -> bool:
        return qname in self.required

    def type_of(self, qname: str) -> Optional[str]:
        return self.typed.get(qname)

    def provides_reasons(self, system: str) -> bool:
        """True when *system* defines controlled reason codes."""
        return bool(self.rating_systems.get(system.strip().upper(), False))


def _version_chain(versions: dict, key: str) -> list[dict]:
    chain = []
    while key:
        if key not in versions:
            raise UnsupportedTemplate(f"No schema data for template {key}")
        entry = versions[key]
        chain.insert(0, entry)
        key = entry.get("extends")
    return chain


def load_schema_config(version, schemas_path: Optional[str] = None,
                       mappings_path: Optional[str] = None
                       ) -> SchemaVersionConfig:
    """Build the immutable config for a template version.

    ``required`` and ``typed`` entries accumulate along the ``extends``
    chain in ``schemas.yaml``, oldest first.
    """
    if not isinstance(version, TemplateVersion):
        version = TemplateVersion.parse(version)
    if not version.supported:
        raise UnsupportedTemplate(
            f"Template version {version.value} is not supported"
        )

    with open(schemas_path or SCHEMAS_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    required: set[str] = set()
    typed: dict[str, str] = {}
    volumes = False
    for entry in _version_chain(data["versions"], version.value):
        required.update(entry.get("required", []))
        typed.update(entry.get("typed", {}))
        volumes = entry.get("volumes", volumes)

    entry = data["versions"][version.value]
    fmt = data["namespaces"]
    namespaces = {
        "avails": fmt["avails"].format(ver=entry["schema"]),
        "md": fmt["md"].format(ver=entry["md"]),
        "mdmec": fmt["mdmec"].format(ver=entry["mdmec"]),
    }
    ratings = {str(k).upper(): bool(v)
               for k, v in data.get("rating_systems", {}).items()}

    return SchemaVersionConfig(
        template_version=version,
        schema_version=entry["schema"],
        namespaces=MappingProxyType(namespaces),
        required=frozenset(required),
        typed=MappingProxyType(typed),
        mappings=load_mapping_root(entry["schema"], mappings_path),
        rating_systems=MappingProxyType(ratings),
        volumes=bool(volumes),
    )
