"""
Builtin mapping functions.

These are the only functions a ``%FUNCTION`` entry may name.  Each one
receives an :class:`~avails_mapping.interpreter.Invocation` (row, argument
map, parent node and provenance-tracked node helpers) and returns the
nodes to append, possibly none.
"""

from collections import namedtuple

from .formats import (
    ALT_ID_NAMESPACE_PREFIX,
    FormatError,
    format_typed,
    is_eidr,
    normalize_date,
    normalize_eidr,
    region_element,
    validate_region,
)

FunctionSpec = namedtuple("FunctionSpec", ["fn", "required", "optional"])


def _flag(value: str, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("yes", "y", "true", "t")


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def eidr(inv):
    """Emit the canonical URN form of an EIDR; non-EIDRs are filtered."""
    ped = inv.value(inv.args["col"])
    if ped.is_empty():
        return inv.missing_if_required(inv.tag, ped)
    if not is_eidr(ped.raw_value):
        if _flag(inv.args.get("filter"), True):
            return []
        return [inv.leaf(inv.tag, ped)]
    try:
        text = normalize_eidr(ped.raw_value)
    except FormatError as e:
        inv.invalid(ped, str(e))
        text = ped.raw_value
    return [inv.leaf(inv.tag, ped, text)]


def alt_id(inv):
    """Namespaced alternate identifier; EIDRs belong in ``eidr`` instead."""
    col = inv.args["col"]
    ped = inv.value(col)
    if ped.is_empty():
        return []
    if _flag(inv.args.get("filterEidr"), True) and is_eidr(ped.raw_value):
        return []
    namespace = inv.args.get("namespace") or ALT_ID_NAMESPACE_PREFIX
    node = inv.container(inv.tag)
    node.append(inv.leaf("md:Namespace", ped, namespace))
    node.append(inv.leaf("md:Identifier", ped,
                         f"{col.split('/')[-1]}:{ped.raw_value}"))
    inv.record(node, ped)
    return [node]


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

def content_rating(inv):
    """Add a Rating to the parent's single shared Ratings container.

    A ``(System, Value)`` pair already present is not added again, which
    also de-duplicates ratings supplied by several rows for one asset.
    """
    system = inv.value(inv.args["system"])
    value = inv.value(inv.args["value"])
    if system.is_empty() and value.is_empty():
        return []

    ratings = inv.parent.child(inv.tag.split(":")[-1])
    created = ratings is None
    if created:
        ratings = inv.container(inv.tag)

    for existing in ratings.children_named("Rating"):
        s = existing.child("System")
        v = existing.child("Value")
        if (s is not None and s.text == system.raw_value
                and v is not None and v.text == value.raw_value):
            return []

    rating = inv.container("md:Rating")
    region = inv.value(inv.args["region"]) if "region" in inv.args else None
    if region is not None and not region.is_empty():
        code = region.split(",")[0]
        try:
            validate_region(code)
        except FormatError as e:
            inv.invalid(region, str(e))
        reg = rating.append(inv.container("md:Region"))
        reg.append(inv.leaf(f"md:{region_element(code)}", region, code))
    rating.append(inv.leaf("md:System", system))
    rating.append(inv.leaf("md:Value", value))

    reason = inv.value(inv.args["reason"]) if "reason" in inv.args else None
    if reason is not None and not reason.is_empty():
        if inv.config.provides_reasons(system.raw_value):
            for code in reason.split(","):
                rating.append(inv.leaf("md:Reason", reason, code))
        else:
            rating.append(inv.leaf("md:Reason", reason))

    ratings.append(rating)
    return [ratings] if created else []


# ---------------------------------------------------------------------------
# People, release history, grouping
# ---------------------------------------------------------------------------

def people(inv):
    ped = inv.value(inv.args["col"])
    if ped.is_empty():
        return []
    node = inv.container(inv.tag)
    job = node.append(inv.container("md:Job"))
    job.append(inv.leaf("md:JobFunction", None, inv.args["job"]))
    name = node.append(inv.container("md:Name"))
    name.append(inv.leaf("md:DisplayName", ped))
    inv.record(node, ped)
    return [node]


def release_history(inv):
    ped = inv.value(inv.args["col"])
    if ped.is_empty():
        return inv.missing_if_required(inv.tag, ped)
    try:
        day = normalize_date(ped.raw_value)
    except FormatError as e:
        inv.invalid(ped, str(e))
        day = ped.raw_value
    node = inv.container(inv.tag)
    node.append(inv.leaf("md:ReleaseType", None, inv.args["type"]))
    node.append(inv.leaf("md:Date", ped, day))
    inv.record(node, ped)
    return [node]


def channel_grouping(inv):
    ped = inv.value(inv.args["col"])
    if ped.is_empty():
        return []
    node = inv.container(inv.tag)
    node.append(inv.leaf("md:Type", None, inv.args["type"]))
    node.append(inv.leaf("md:GroupIdentity", ped))
    node.append(inv.leaf("md:DisplayName", ped))
    inv.record(node, ped)
    return [node]


# ---------------------------------------------------------------------------
# Typed values
# ---------------------------------------------------------------------------

def format_type(inv):
    ped = inv.value(inv.args["col"])
    if ped.is_empty():
        return inv.missing_if_required(inv.tag, ped)
    try:
        text = format_typed(ped.raw_value, inv.args["type"],
                            _flag(inv.args.get("roundOff"), False))
    except FormatError as e:
        inv.invalid(ped, str(e))
        text = ped.raw_value
    return [inv.leaf(inv.tag, ped, text)]


BUILTINS = {
    "eidr": FunctionSpec(eidr, ("col",), ("filter",)),
    "altId": FunctionSpec(alt_id, ("col",), ("namespace", "filterEidr")),
    "contentRating": FunctionSpec(content_rating, ("system", "value"),
                                  ("reason", "region")),
    "people": FunctionSpec(people, ("col", "job"), ()),
    "releaseHistory": FunctionSpec(release_history, ("col", "type"), ()),
    "channelGrouping": FunctionSpec(channel_grouping, ("col", "type"), ()),
    "formatType": FunctionSpec(format_type, ("col", "type"), ("roundOff",)),
}
