"""
Value normalisation — identifiers, dates, durations, booleans, languages
and regions.

Every converter either returns the canonical text or raises
:class:`FormatError`.  Callers decide what to do with a failure; the
builders log an ``InvalidFormat`` diagnostic and pass the raw value
through so that downstream validation can flag it as well.
"""

import datetime
import re
from typing import Optional


class FormatError(ValueError):
    """A value could not be normalised."""


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

EIDR_URN_PREFIX = "urn:eidr:"
EIDR_DOI_PREFIX = "10.5240/"
MOVIELABS_PREFIX = "md:"
ALT_ID_NAMESPACE_PREFIX = "org:mddf"

ID_EIDR_URN = "eidr-URN"
ID_EIDR_5240 = "eidr-5240"
ID_MOVIELABS = "MovieLabs"
ID_USER = "user"

_EIDR_SUFFIX_RE = re.compile(r"^[0-9A-F]{4}(-[0-9A-F]{4}){4}-[0-9A-Z]$")
_EIDR_URN_RE = re.compile(r"^urn:eidr:(10\.\d{4}):(.+)$", re.IGNORECASE)


def parse_id_format(value: str) -> str:
    """Classify an identifier by its encoding prefix."""
    lowered = value.strip().lower()
    if lowered.startswith(EIDR_URN_PREFIX):
        return ID_EIDR_URN
    if lowered.startswith(EIDR_DOI_PREFIX):
        return ID_EIDR_5240
    if lowered.startswith(MOVIELABS_PREFIX):
        return ID_MOVIELABS
    return ID_USER


def is_eidr(value: str) -> bool:
    return parse_id_format(value) in (ID_EIDR_URN, ID_EIDR_5240)


def normalize_eidr(value: str, form: str = "urn") -> str:
    """Return the canonical EIDR for *value*.

    Parameters
    ----------
    value : str
        Either ``urn:eidr:10.5240:XXXX-...`` or ``10.5240/XXXX-...``.
    form : str
        ``"urn"`` (default) for ``urn:eidr:10.5240:SUFFIX`` or ``"short"``
        for ``10.5240/SUFFIX``.  The suffix is always upper-cased.

    Raises
    ------
    FormatError
        If *value* is not an EIDR or its suffix is malformed.
    """
    text = value.strip()
    fmt = parse_id_format(text)
    if fmt == ID_EIDR_URN:
        m = _EIDR_URN_RE.match(text)
        if not m:
            raise FormatError(f"Malformed EIDR URN '{value}'")
        registrant, suffix = m.group(1), m.group(2).upper()
    elif fmt == ID_EIDR_5240:
        registrant, suffix = "10.5240", text[len(EIDR_DOI_PREFIX):].upper()
    else:
        raise FormatError(f"'{value}' is not an EIDR")

    if registrant == "10.5240" and not _EIDR_SUFFIX_RE.match(suffix):
        raise FormatError(f"Malformed EIDR suffix in '{value}'")
    if form == "short":
        return f"{registrant}/{suffix}"
    return f"{EIDR_URN_PREFIX}{registrant}:{suffix}"


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------

_DATE_FORMATS = ("%Y-%m-%d", "%d-%b-%Y", "%d-%B-%Y", "%m/%d/%Y")
_HAS_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?"
                          r"(Z|[+-]\d{2}:\d{2})?$")


def normalize_date(value: str) -> str:
    """Normalise a date to ``YYYY-MM-DD``.

    Accepts ``YYYY-MM-DD``, ``DD-Mon-YYYY`` (month name in any case) and
    ``MM/DD/YYYY``.  Impossible calendar dates such as ``2021-02-29``
    are rejected.
    """
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.date().isoformat()
    raise FormatError(f"Invalid date '{value}'")


def date_time_to_xml(value: str, round_off: bool = False) -> str:
    """Convert a date or date-time to ``xs:dateTime`` text.

    A value that already carries a time is returned as-is.  A bare date
    gets ``T00:00:00`` appended, or ``T23:59:59`` when *round_off* is set
    (used for End-type fields).
    """
    text = value.strip()
    if _HAS_TIME_RE.match(text):
        return text
    day = normalize_date(text)
    return day + ("T23:59:59" if round_off else "T00:00:00")


_ISO_DURATION_RE = re.compile(
    r"^-?P(?=\d|T\d)(\d+Y)?(\d+M)?(\d+W)?(\d+D)?"
    r"(T(?=\d)(\d+H)?(\d+M)?(\d+(\.\d+)?S)?)?$"
)
_CLOCK_DURATION_RE = re.compile(r"^(\d+)(?::(\d+))?(?::(\d+(?:\.\d+)?))?$")


def duration_to_xml(value: str) -> str:
    """Convert ``hh[:mm[:ss]]`` to an ISO-8601 duration (``PT1H30M``)."""
    text = value.strip()
    if _ISO_DURATION_RE.match(text):
        return text
    m = _CLOCK_DURATION_RE.match(text)
    if not m:
        raise FormatError(f"Invalid duration '{value}'")
    hours, minutes, seconds = m.groups()
    out = f"PT{hours}H"
    if minutes is not None:
        out += f"{minutes}M"
        if seconds is not None:
            out += f"{seconds}S"
    return out


_TRUE = {"yes", "y", "true", "t"}
_FALSE = {"no", "n", "false", "f"}


def boolean_to_xml(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return "true"
    if lowered in _FALSE:
        return "false"
    raise FormatError(f"Invalid boolean '{value}'")


def format_typed(value: str, xs_type: str, round_off: bool = False) -> str:
    """Dispatch on an ``xs:`` type name."""
    kind = xs_type.split(":")[-1]
    if kind == "boolean":
        return boolean_to_xml(value)
    if kind == "duration":
        return duration_to_xml(value)
    if kind == "dateTime":
        return date_time_to_xml(value, round_off)
    if kind == "date":
        return normalize_date(value)
    raise FormatError(f"Unsupported type '{xs_type}'")


TYPED_KINDS = ("boolean", "duration", "dateTime", "date")


# ---------------------------------------------------------------------------
# Languages and regions
# ---------------------------------------------------------------------------

_LANGUAGE_RE = re.compile(r"^[a-zA-Z]{2,3}(-[a-zA-Z0-9]{1,8})*$")
LANGUAGE_ASSET_SUFFIXES = ("sub", "dub", "subdub")


def parse_language(value: str,
                   allow_suffix: bool = False) -> tuple[str, Optional[str]]:
    """Split ``en-US:dub`` into ``("en-US", "dub")``.

    Without *allow_suffix* any ``:suffix`` is an error.
    """
    text = value.strip()
    tag, _, suffix = text.partition(":")
    if suffix:
        if not allow_suffix:
            raise FormatError(f"Language suffix not allowed in '{value}'")
        if suffix.lower() not in LANGUAGE_ASSET_SUFFIXES:
            raise FormatError(f"Unsupported language suffix in '{value}'")
    if not _LANGUAGE_RE.match(tag):
        raise FormatError(f"Unsupported language tag '{tag}'")
    return tag, (suffix.lower() or None)


_COUNTRY_RE = re.compile(r"^[A-Za-z]{2}$")
_COUNTRY_REGION_RE = re.compile(r"^[A-Za-z]{2}-[A-Za-z0-9]{1,3}$")


def region_element(code: str) -> str:
    """``country`` for a two-letter code, ``countryRegion`` otherwise."""
    return "countryRegion" if len(code.strip()) > 2 else "country"


def validate_region(code: str) -> str:
    text = code.strip()
    if _COUNTRY_RE.match(text) or _COUNTRY_REGION_RE.match(text):
        return text
    raise FormatError(f"Invalid region code '{code}'")
