"""
Row strategies — how one row becomes disposition, publisher, asset,
transaction and entitlement fragments for a given template version.

Each template version is a :class:`RowStrategy` *value*.  The oldest
supported version (1.7) is the base; every later version is the previous
strategy with a small table of named overrides applied, e.g. 1.7.2 only
replaces ``build_format_profile``.  ``strategy_for`` composes the chain
and dispatches on :class:`~avails_mapping.versions.TemplateVersion`.

Builders call each other through ``ctx.strategy`` so that an override
of one step is picked up by every builder that uses it.
"""

import dataclasses
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .diagnostics import Category, DiagnosticLog, UnsupportedTemplate
from .formats import (
    FormatError,
    boolean_to_xml,
    date_time_to_xml,
    duration_to_xml,
    parse_language,
    region_element,
    validate_region,
)
from .interpreter import MappingInterpreter
from .nodes import OutputNode, new_node
from .provenance import ProvenanceTracker
from .rows import Pedigree, Row
from .versions import SUPPORTED_VERSIONS, SchemaVersionConfig, TemplateVersion

MODULE = "strategy"

PREFIXED_WORK_TYPES = ("Episode", "Season", "Series", "Volume")

DATE_START_RE = re.compile(r"^\d{4}-")


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BuildContext:
    """Everything a builder needs for one ingestion pass."""

    config: SchemaVersionConfig
    strategy: "RowStrategy"
    interpreter: MappingInterpreter
    tracker: ProvenanceTracker
    log: DiagnosticLog

    def leaf(self, qname: str, pedigree: Optional[Pedigree],
             text: Optional[str] = None) -> OutputNode:
        return self.interpreter.leaf(qname, pedigree, text)

    def placeholder(self, qname: str, pedigree: Pedigree,
                    column: str) -> list[OutputNode]:
        return self.interpreter.placeholder(qname, pedigree, column)

    def invalid(self, pedigree: Pedigree, message: str) -> None:
        self.interpreter.invalid_format(pedigree, message, module=MODULE)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def map_work_type(work_type: str) -> str:
    """Avail type for a work type: Movie and Short are ``single``."""
    if work_type in ("Movie", "Short"):
        return "single"
    return work_type.lower()


def content_id_column(work_type: str) -> str:
    if work_type in PREFIXED_WORK_TYPES:
        return f"AvailAsset/{work_type}ContentID"
    return "AvailAsset/ContentID"


def _add(ctx: BuildContext, parent: OutputNode, qname: str, row: Row,
         column: str, required: bool = False) -> Optional[OutputNode]:
    """Append a leaf for *column* if it has a value."""
    ped = row.get(column)
    if ped.is_empty():
        if required:
            parent.extend(ctx.placeholder(qname, ped, column))
        return None
    return parent.append(ctx.leaf(qname, ped))


def _convert(ctx: BuildContext, ped: Pedigree, fn, *args) -> str:
    try:
        return fn(ped.raw_value, *args)
    except FormatError as e:
        ctx.invalid(ped, str(e))
        return ped.raw_value


def _region(ctx: BuildContext, qname: str, ped: Pedigree,
            code: str) -> OutputNode:
    try:
        validate_region(code)
    except FormatError as e:
        ctx.invalid(ped, str(e))
    node = new_node(qname)
    node.append(ctx.leaf(f"md:{region_element(code)}", ped, code))
    ctx.tracker.record(node, ped)
    return node


# ---------------------------------------------------------------------------
# Base (template 1.7) builders
# ---------------------------------------------------------------------------

def build_disposition(ctx: BuildContext, row: Row) -> OutputNode:
    node = new_node("avails:Disposition")
    _add(ctx, node, "avails:EntryType", row, "Disposition/EntryType",
         required=True)
    return node


def build_publisher(ctx: BuildContext, row: Row, qname: str,
                    column: str) -> OutputNode:
    """Licensor / ServiceProvider block holding a DisplayName."""
    ped = row.get(column)
    node = new_node(qname)
    if ped.is_empty():
        node.extend(ctx.placeholder("md:DisplayName", ped, column))
    else:
        node.append(ctx.leaf("md:DisplayName", ped))
        ctx.tracker.record(node, ped)
    return node


def build_asset(ctx: BuildContext, row: Row) -> OutputNode:
    work_type = row.get("AvailAsset/WorkType")
    cid_column = content_id_column(work_type.raw_value)
    content_id = row.get(cid_column)

    asset = new_node("avails:Asset")
    if content_id.is_empty():
        ctx.log.error(Category.MISSING_REQUIRED_FIELD,
                      f"Missing '{cid_column}' for Asset contentID",
                      locator=content_id.source or work_type.source,
                      module=MODULE)
    else:
        asset.set("contentID", content_id.raw_value)
        ctx.tracker.record(asset, content_id, attribute="contentID")
        ctx.tracker.record(asset, content_id)

    if work_type.is_empty():
        asset.extend(ctx.placeholder("avails:WorkType", work_type,
                                     "AvailAsset/WorkType"))
    else:
        asset.append(ctx.leaf("avails:WorkType", work_type))
        target = ctx.strategy.asset_metadata.get(work_type.raw_value)
        if target is None:
            ctx.invalid(work_type,
                        f"Unsupported WorkType '{work_type.raw_value}'")
        else:
            entity, tag = target
            asset.append(ctx.interpreter.interpret(
                ctx.config.mappings[entity], row, tag))

    bundled = row.get("Avail/BundledALIDs")
    for alid in bundled.split(";"):
        ba = asset.append(new_node("avails:BundledAsset"))
        ba.append(ctx.leaf("avails:BundledALID", bundled, alid))
    return asset


def build_transaction(ctx: BuildContext, row: Row) -> OutputNode:
    s = ctx.strategy
    trans = new_node("avails:Transaction")
    tid = row.get("Avail/AvailID")
    if not tid.is_empty():
        trans.set("TransactionID", tid.raw_value)
        ctx.tracker.record(trans, tid, attribute="TransactionID")

    s.build_licensee(ctx, row, trans)
    _add(ctx, trans, "avails:LicenseType", row, "AvailTrans/LicenseType",
         required=True)
    _add(ctx, trans, "avails:Description", row, "AvailTrans/Description")
    s.build_territory(ctx, row, trans)
    s.build_window(ctx, row, trans)
    s.build_languages(ctx, row, trans)
    _add(ctx, trans, "avails:LicenseRightsDescription", row,
         "AvailTrans/LicenseRightsDescription")
    s.build_format_profile(ctx, row, trans)
    _add(ctx, trans, "avails:ContractID", row, "AvailTrans/ContractID")
    _add(ctx, trans, "avails:ReportingID", row, "AvailTrans/ReportingID")
    s.build_terms(ctx, row, trans)
    _add(ctx, trans, "avails:OtherInstructions", row,
         "AvailTrans/OtherInstructions")
    return trans


def build_entitlements(ctx: BuildContext, row: Row) -> list[tuple]:
    """``(ecosystem, pedigree)`` pairs for every populated ecosystem id."""
    out = []
    for ecosystem, column in ctx.strategy.ecosystems:
        ped = row.get(column)
        if not ped.is_empty():
            out.append((ecosystem, ped))
    return out


def _no_licensee(ctx, row, trans):
    return None


def _territory(ctx: BuildContext, row: Row, trans: OutputNode) -> None:
    ped = row.get("AvailTrans/Territory")
    if ped.is_empty():
        trans.extend(ctx.placeholder("avails:Territory", ped,
                                     "AvailTrans/Territory"))
        return
    trans.append(_region(ctx, "avails:Territory", ped, ped.raw_value))


def _condition(ctx: BuildContext, row: Row, trans: OutputNode, name: str,
               column: str, round_off: bool) -> None:
    """``Start``/``End`` for a date, ``StartCondition``/``EndCondition``
    for anything else."""
    ped = row.get(column)
    if ped.is_empty():
        trans.extend(ctx.placeholder(f"avails:{name}", ped, column))
        return
    if DATE_START_RE.match(ped.raw_value):
        text = _convert(ctx, ped, date_time_to_xml, round_off)
        trans.append(ctx.leaf(f"avails:{name}", ped, text))
    else:
        trans.append(ctx.leaf(f"avails:{name}Condition", ped))


def _window(ctx: BuildContext, row: Row, trans: OutputNode) -> None:
    _condition(ctx, row, trans, "Start", "AvailTrans/Start", False)
    _condition(ctx, row, trans, "End", "AvailTrans/End", True)


def _language_nodes(ctx: BuildContext, trans: OutputNode, qname: str,
                    ped: Pedigree, allow_suffix: bool,
                    split: bool = True) -> list[OutputNode]:
    if ped.is_empty():
        return []
    values = ped.split(",") if split else [ped.raw_value]
    nodes = []
    for value in values:
        try:
            tag, asset = parse_language(value, allow_suffix)
        except FormatError as e:
            ctx.invalid(ped, str(e))
            tag, asset = value, None
        node = trans.append(ctx.leaf(qname, ped, tag))
        if asset:
            node.set("asset", asset)
        nodes.append(node)
    return nodes


def _languages(ctx: BuildContext, row: Row, trans: OutputNode) -> None:
    _language_nodes(ctx, trans, "avails:AllowedLanguage",
                    row.get("AvailTrans/AllowedLanguages"), False)
    _language_nodes(ctx, trans, "avails:AssetLanguage",
                    row.get("AvailTrans/AssetLanguage"), False, split=False)
    _language_nodes(ctx, trans, "avails:HoldbackLanguage",
                    row.get("AvailTrans/HoldbackLanguage"), False)


def _format_profile(ctx: BuildContext, row: Row,
                    trans: OutputNode) -> Optional[OutputNode]:
    return _add(ctx, trans, "avails:FormatProfile", row,
                "AvailTrans/FormatProfile")


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------

BASE_TERMS = (
    ("SuppressionLiftDate", "Event", "AvailTrans/SuppressionLiftDate"),
    ("AnnounceDate", "Event", "AvailTrans/AnnounceDate"),
    ("PreOrderFulfillDate", "Event", "AvailTrans/SpecialPreOrderFulfillDate"),
    ("SRP", "Money", "AvailTrans/SRP"),
    ("RentalDuration", "Duration", "AvailTrans/RentalDuration"),
    ("WatchDuration", "Duration", "AvailTrans/WatchDuration"),
    ("FixedEndDate", "Event", "AvailTrans/FixedEndDate"),
)

V1_7_3_TERMS = (
    ("Download", "Text", "AvailTrans/Download"),
    ("Exclusive", "Boolean", "AvailTrans/Exclusive"),
    ("ExclusiveAttributes", "Text", "AvailTrans/ExclusiveAttributes"),
    ("BrandingRights", "Boolean", "AvailTrans/BrandingRights"),
    ("BrandingRightsAttributes", "Text", "AvailTrans/BrandingRightsAttributes"),
    ("TitleStatus", "Text", "AvailTrans/TitleStatus"),
)

V1_8_TERMS = (
    ("Bonus", "Text", "AvailTrans/Bonus"),
    ("PackageLabel", "Text", "AvailAsset/PackageLabel"),
)

PRICE_TEXT_TYPES = ("Tier", "Category", "LicenseFee", "NA")
PRICE_MONEY_TYPES = ("EpisodeWSP", "SeasonWSP", "DMRP", "SMRP")
_PRICE_TYPES = {p.lower(): p for p in
                PRICE_TEXT_TYPES + PRICE_MONEY_TYPES
                + ("WSP", "SRP", "Season Only")}

_TERM_CONVERTERS = {
    "Event": lambda v: date_time_to_xml(v, False),
    "Duration": duration_to_xml,
    "Boolean": boolean_to_xml,
}


def _term(ctx: BuildContext, trans: OutputNode, name: str, kind: str,
          ped: Pedigree, currency: Optional[Pedigree] = None) -> OutputNode:
    term = new_node("avails:Terms")
    term.set("termName", name)
    convert = _TERM_CONVERTERS.get(kind)
    text = _convert(ctx, ped, convert) if convert else ped.raw_value
    child = term.append(ctx.leaf(f"avails:{kind}", ped, text))
    if currency is not None and not currency.is_empty():
        child.set("currency", currency.raw_value)
        ctx.tracker.record(child, currency, attribute="currency")
    ctx.tracker.record(term, ped)
    return trans.append(term)


def _price_term(ctx: BuildContext, row: Row, trans: OutputNode) -> None:
    ped = row.get("AvailTrans/PriceType")
    if ped.is_empty():
        return
    raw = ped.raw_value
    prefix = ""
    if raw.upper().startswith("TPR-"):
        prefix, raw = raw[:4], raw[4:]
    price_type = _PRICE_TYPES.get(raw.strip().lower())

    if price_type in ctx.strategy.deprecated_price_types:
        ctx.invalid(ped, f"PriceType '{raw}' is deprecated")
        return
    if price_type == "Season Only":
        return
    if price_type is None:
        ctx.invalid(ped, f"Unrecognized PriceType '{ped.raw_value}'")
        return

    value = row.get("AvailTrans/PriceValue")
    if value.is_empty():
        ctx.log.error(Category.MISSING_REQUIRED_FIELD,
                      f"Missing 'AvailTrans/PriceValue' for PriceType '{raw}'",
                      locator=ped.source, module=MODULE)
        return
    currency = row.get("AvailTrans/PriceCurrency")
    if price_type in PRICE_TEXT_TYPES:
        _term(ctx, trans, prefix + price_type, "Text", value)
        return
    if price_type == "WSP":
        episodic = row.value("AvailAsset/WorkType") == "Episode"
        price_type = "EpisodeWSP" if episodic else "SeasonWSP"
    _term(ctx, trans, prefix + price_type, "Money", value, currency)


def _terms(ctx: BuildContext, row: Row, trans: OutputNode) -> None:
    _price_term(ctx, row, trans)
    currency = row.get("AvailTrans/PriceCurrency")
    for name, kind, column in ctx.strategy.column_terms:
        ped = row.get(column)
        if ped.is_empty():
            continue
        _term(ctx, trans, name, kind, ped,
              currency if kind == "Money" else None)


# ---------------------------------------------------------------------------
# 1.7.2 overrides
# ---------------------------------------------------------------------------

FORMAT_PROFILE_ATTRIBUTES = ("HDR", "WCG", "HFR", "NGAudio")


def _format_profile_v1_7_2(ctx, row, trans):
    node = _format_profile(ctx, row, trans)
    if node is None:
        return None
    for attr in FORMAT_PROFILE_ATTRIBUTES:
        ped = row.get(f"AvailTrans/{attr}")
        if not ped.is_empty():
            node.set(attr, ped.raw_value)
            ctx.tracker.record(node, ped, attribute=attr)
    return node


# ---------------------------------------------------------------------------
# 1.7.3 overrides
# ---------------------------------------------------------------------------

def _licensee_v1_7_3(ctx, row, trans):
    ped = row.get("Avail/Licensee")
    if ped.is_empty():
        return None
    node = trans.append(new_node("avails:Licensee"))
    node.append(ctx.leaf("md:DisplayName", ped))
    ctx.tracker.record(node, ped)
    return node


def _territory_v1_7_3(ctx, row, trans):
    ped = row.get("AvailTrans/Territory")
    codes = ped.split(",")
    if not codes:
        trans.extend(ctx.placeholder("avails:Territory", ped,
                                     "AvailTrans/Territory"))
    for code in codes:
        trans.append(_region(ctx, "avails:Territory", ped, code))
    excluded = row.get("AvailTrans/TerritoryExclusion")
    for code in excluded.split(","):
        trans.append(_region(ctx, "avails:TerritoryExcluded", excluded,
                             code))


_LAGS = (("Start", "AvailTrans/StartLag"), ("End", "AvailTrans/EndLag"))


def _window_v1_7_3(ctx, row, trans):
    _window(ctx, row, trans)
    for base, column in _LAGS:
        lag = row.get(column)
        if lag.is_empty():
            continue
        target = trans.child(f"{base}Condition")
        if target is None:
            if trans.child(base) is not None:
                reason = "Base value must be conditional"
            else:
                reason = f"Missing {base}Condition"
            ctx.invalid(lag, f"Invalid use of '{column}'; {reason}")
            continue
        target.set("lag", _convert(ctx, lag, duration_to_xml))
        ctx.tracker.record(target, lag, attribute="lag")

    duration = row.get("AvailTrans/WindowDuration")
    if not duration.is_empty():
        trans.append(ctx.leaf("avails:WindowDuration", duration,
                              _convert(ctx, duration, duration_to_xml)))


def _languages_v1_7_3(ctx, row, trans):
    _language_nodes(ctx, trans, "avails:AllowedLanguage",
                    row.get("AvailTrans/AllowedLanguages"), True)
    assets = _language_nodes(ctx, trans, "avails:AssetLanguage",
                             row.get("AvailTrans/AssetLanguage"), True)
    _language_nodes(ctx, trans, "avails:HoldbackLanguage",
                    row.get("AvailTrans/HoldbackLanguage"), True)

    required = row.get("AvailTrans/RequiredFulfillmentLanguages")
    for lang in required.split(","):
        matched = [n for n in assets
                   if (n.text or "").lower() == lang.lower()]
        if not matched:
            ctx.invalid(required, f"Required fulfillment language '{lang}' "
                                  f"is not an AssetLanguage")
        for node in matched:
            node.set("assetProvided", "true")
            ctx.tracker.record(node, required, attribute="assetProvided")


# ---------------------------------------------------------------------------
# 1.8 overrides
# ---------------------------------------------------------------------------

VOLUME_MARKER = "volNum"


def _asset_v1_8(ctx, row):
    """Episodes carry a staging ``volNum`` attribute for the finalizer."""
    asset = build_asset(ctx, row)
    volume = row.get("AvailAsset/VolumeNumber")
    if row.value("AvailAsset/WorkType") == "Episode" and not volume.is_empty():
        asset.set(VOLUME_MARKER, volume.raw_value)
    return asset


# ---------------------------------------------------------------------------
# Strategy values and dispatch
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowStrategy:
    version: TemplateVersion
    build_disposition: Callable
    build_publisher: Callable
    build_asset: Callable
    build_transaction: Callable
    build_entitlements: Callable
    build_licensee: Callable
    build_territory: Callable
    build_window: Callable
    build_languages: Callable
    build_format_profile: Callable
    build_terms: Callable
    asset_metadata: Mapping[str, tuple]
    column_terms: tuple
    deprecated_price_types: frozenset
    ecosystems: tuple

    def with_overrides(self, version: TemplateVersion,
                       overrides: dict[str, Any]) -> "RowStrategy":
        return dataclasses.replace(self, version=version, **overrides)


BASE = RowStrategy(
    version=TemplateVersion.V1_7,
    build_disposition=build_disposition,
    build_publisher=build_publisher,
    build_asset=build_asset,
    build_transaction=build_transaction,
    build_entitlements=build_entitlements,
    build_licensee=_no_licensee,
    build_territory=_territory,
    build_window=_window,
    build_languages=_languages,
    build_format_profile=_format_profile,
    build_terms=_terms,
    asset_metadata={
        "Movie": ("Movie", "avails:Metadata"),
        "Short": ("Movie", "avails:Metadata"),
        "Episode": ("Episode", "avails:EpisodeMetadata"),
        "Season": ("Season", "avails:SeasonMetadata"),
        "Series": ("Series", "avails:SeriesMetadata"),
    },
    column_terms=BASE_TERMS,
    deprecated_price_types=frozenset({"SRP"}),
    ecosystems=(("UVVU", "Avail/UV_ID"), ("DMA", "Avail/DMA_ID")),
)

OVERRIDES: dict[TemplateVersion, dict[str, Any]] = {
    TemplateVersion.V1_7: {},
    TemplateVersion.V1_7_2: {
        "build_format_profile": _format_profile_v1_7_2,
    },
    TemplateVersion.V1_7_3: {
        "build_licensee": _licensee_v1_7_3,
        "build_territory": _territory_v1_7_3,
        "build_window": _window_v1_7_3,
        "build_languages": _languages_v1_7_3,
        "column_terms": BASE_TERMS + V1_7_3_TERMS,
    },
    TemplateVersion.V1_8: {
        "build_asset": _asset_v1_8,
        "asset_metadata": {
            **BASE.asset_metadata,
            "Volume": ("Volume", "avails:VolumeMetadata"),
        },
        "column_terms": BASE_TERMS + V1_7_3_TERMS + V1_8_TERMS,
    },
}


def strategy_for(version: TemplateVersion) -> RowStrategy:
    """Compose the base strategy with every override up to *version*."""
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedTemplate(
            f"No row strategy for template version {version.value}"
        )
    strategy = BASE
    for v in SUPPORTED_VERSIONS:
        strategy = strategy.with_overrides(v, OVERRIDES[v])
        if v == version:
            break
    return strategy
