# ABOUTME: Field cleaning shared by the path extractors and the duplicate grouper.
# ABOUTME: Strips format/uploader contamination, canonicalizes artists, and builds comparison keys.

import re
import unicodedata

# A token needs at least this many lower->upper boundaries before we split it.
# One boundary is too often a real name ("McCartney", "DeadMau5").
_MIN_CAMEL_BOUNDARIES = 2

_CAMEL_CASE_RE = re.compile(r"[a-z][A-Z]")
_CAMEL_LOWER_UPPER_RE = re.compile(r"([a-z\d])([A-Z])")
_CAMEL_UPPER_SEQUENCE_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WHITESPACE_RE = re.compile(r"\s+")

# Bracketed release-format noise: [FLAC], (320), [WEB FLAC 24-96], (V0) ...
_FORMAT_TOKEN = (
    r"(?:flac|mp3|aac|alac|wav|ogg|opus|lossless|lossy|web|cd|cdr|cdm|cds|vinyl|"
    r"hi-?res|retail|promo|\d{2,3}\s*(?:k|kbps|kbit)?|v[0-2]|\d{2}\s*-?\s*bits?|"
    r"\d{2}(?:\.\d)?\s*-?\s*k?hz|\d{2}[-/]\d{2,3})"
)
_FORMAT_TAG_RE = re.compile(
    rf"\s*[\[\(]\s*{_FORMAT_TOKEN}(?:[\s,/+_-]+{_FORMAT_TOKEN})*\s*[\]\)]",
    re.IGNORECASE,
)
# "Artist - Title [FLAC] By SomeUploader" -- only after a closing bracket.
_UPLOADER_RE = re.compile(r"(?<=[\]\)])\s+by\s+\S.*$", re.IGNORECASE)

_TRACK_PREFIX_RES = (
    re.compile(r"^\d{1,2}\)\s*"),
    re.compile(r"^\d{1,2}\s*-\s+"),
    re.compile(r"^\d{1,2}\.\s*"),
)
_AKA_RE = re.compile(r"\s+(?:a\.?k\.?a\.?|also known as)\s+.+$", re.IGNORECASE)

_VARIOUS_ARTISTS = frozenset({"va", "v.a.", "v/a", "various", "various artists"})
_UNKNOWN_ARTISTS = frozenset({"unknown", "unknown artist", "no artist", ""})

_BARE_YEAR_RE = re.compile(r"^\d{4}$")
_TRACK_NUMBER_RE = re.compile(r"^\d{1,2}[).]?$")
_CATALOG_LIKE_ARTIST_RE = re.compile(r"^[a-z]{2,5}\s\d{3,5}$")

# WARP123, CAT-001, KOMPAKT 345, mute12x
_CATALOG_RE = re.compile(r"^[A-Za-z]{1,10}[\s-]?\d{1,6}[A-Za-z]{0,2}$")
_CATALOG_PREFIX_RE = re.compile(r"^([A-Za-z]+)\d+")

_MIN_YEAR = 1900
_MAX_YEAR = 2099


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _split_camel_case(text: str) -> str:
    """Split 'TheDarkSideOfTheMoon' into words; leave lightly-cased names alone."""
    if len(_CAMEL_CASE_RE.findall(text)) < _MIN_CAMEL_BOUNDARIES:
        return text
    result = _CAMEL_LOWER_UPPER_RE.sub(r"\1 \2", text)
    result = _CAMEL_UPPER_SEQUENCE_RE.sub(r"\1 \2", result)
    return result


def clean_field(text: str | None) -> str | None:
    """Turn a raw name fragment into a display value, or None if nothing is left.

    Underscores become spaces, CamelCase runs without spaces are split, and
    whitespace is collapsed.
    """
    if text is None:
        return None
    value = text.replace("_", " ")
    if " " not in value.strip():
        value = _split_camel_case(value)
    value = collapse_whitespace(value)
    return value or None


def strip_contamination(name: str) -> str:
    """Remove uploader credits and bracketed format tags from a directory name."""
    name = _UPLOADER_RE.sub("", name)
    name = _FORMAT_TAG_RE.sub("", name)
    return collapse_whitespace(name)


def normalize_artist(artist: str | None) -> str | None:
    """Canonicalize an artist string: drop track prefixes and aliases, fold VA spellings."""
    value = clean_field(artist)
    if value is None:
        return None

    for prefix_re in _TRACK_PREFIX_RES:
        value = prefix_re.sub("", value)
    value = _AKA_RE.sub("", value).strip()

    lowered = value.lower()
    if lowered in _VARIOUS_ARTISTS:
        return "Various Artists"
    if lowered in _UNKNOWN_ARTISTS:
        return None
    return value or None


def is_valid_artist(artist: str | None) -> bool:
    """Reject strings that are really years, track numbers, or catalog numbers."""
    if not artist:
        return False
    value = artist.strip()
    if len(value) < 2:
        return False
    if _BARE_YEAR_RE.match(value) or _TRACK_NUMBER_RE.match(value):
        return False
    if value.isdigit():
        return False
    return not _CATALOG_LIKE_ARTIST_RE.match(value)


def looks_like_catalog(token: str | None) -> bool:
    """True for catalog-number shaped tokens such as WARP123 or CAT-001."""
    if not token:
        return False
    token = token.strip()
    return bool(_CATALOG_RE.match(token)) and any(ch.isdigit() for ch in token)


def label_from_catalog(catalog: str) -> str | None:
    """Guess a label from a catalog prefix (WARP123 -> WARP)."""
    match = _CATALOG_PREFIX_RE.match(catalog.strip())
    if match and len(match.group(1)) >= 2:
        return match.group(1)
    return None


def parse_year(text: str | int | None) -> int | None:
    """Parse a plausible release year from a 4-digit prefix, else None."""
    if text is None:
        return None
    match = re.match(r"^\s*(\d{4})", str(text))
    if not match:
        return None
    year = int(match.group(1))
    if _MIN_YEAR <= year <= _MAX_YEAR:
        return year
    return None


def comparison_key(text: str | None) -> str:
    """Case-, diacritic-, whitespace- and punctuation-insensitive form of `text`.

    'Sigur Rós', 'sigur_ros' and 'SIGUR-RÓS!' all map to 'sigurros'.
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(ch for ch in stripped.casefold() if ch.isalnum())
