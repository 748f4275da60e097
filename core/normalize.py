"""
Response Normalization Primitives

Exchange payloads are inconsistent: the same quantity appears under several
names, and the same list appears at several nesting levels. This module
provides the generic machinery; each exchange package declares its own
tables (FIELD_CHAINS and SHAPES) in its normalizer module.

Concepts:
    Field chain:
        An ordered list of dotted source paths for one canonical field.
        The first value that is present, parseable and finite wins.

            FIELD_CHAINS = {"size": ["positionAmt", "size", "qty"]}
            resolve_number(raw, FIELD_CHAINS["size"])

    Shape matcher:
        A pure function payload -> Optional[list]. None means "not my shape";
        a list (possibly empty) means "matched". Matchers are tried in order.

            SHAPES = [top_level_list, under_key("positions"), under_key("data")]
            items = discover_shape(payload, SHAPES, "kraken", "positions")

    Normalization gap:
        No matcher fits. The result is an empty list and a WARNING log line.
        It is never an exception.
"""

import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from core.logging import log_normalization_gap
from core.schemas import PositionSide

EPSILON = 1e-4
FIXED_POINT_SCALE = 10_000

ShapeMatcher = Callable[[Any], Optional[List[Dict[str, Any]]]]


# ============================================
# Numeric Coercion
# ============================================

def to_number(value: Any) -> Optional[float]:
    """
    Coerce a string or number to a finite float.

    Returns None for booleans, empty strings, unparseable strings, NaN and
    infinities.

    Example:
        >>> to_number("12.5")
        12.5
        >>> to_number("nan") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None

    return number if math.isfinite(number) else None


def is_dust(size: Optional[float]) -> bool:
    """True when a size is missing or below EPSILON in magnitude."""
    return size is None or abs(size) < EPSILON


def is_fixed_point(value: Optional[float]) -> bool:
    """
    Detect a volume encoded as an integer scaled by 10,000.

    Only integers with magnitude >= 10,000 that divide evenly qualify, so
    small genuine integer quantities (1, 5, 250) are left alone.
    """
    if value is None or not float(value).is_integer():
        return False
    magnitude = abs(int(value))
    return magnitude >= FIXED_POINT_SCALE and magnitude % FIXED_POINT_SCALE == 0


def scale_contract_volume(volume: Optional[float], contract_size: Optional[float]) -> Optional[float]:
    """
    Convert a contract volume into base-asset units.

    Example:
        >>> scale_contract_volume(120000, 0.001)
        0.012
    """
    if volume is None:
        return None
    if is_fixed_point(volume):
        volume = volume / FIXED_POINT_SCALE
    if contract_size:
        volume = volume * contract_size
    return volume


# ============================================
# Field Chain Resolution
# ============================================

def get_path(obj: Any, path: str) -> Any:
    """Follow a dotted path through nested dicts. Missing steps yield None."""
    current = obj
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def resolve_number(obj: Any, chain: Sequence[str], default: Optional[float] = 0.0) -> Optional[float]:
    """First finite number along the chain, else default."""
    for path in chain:
        number = to_number(get_path(obj, path))
        if number is not None:
            return number
    return default


def resolve_positive(obj: Any, chain: Sequence[str]) -> Optional[float]:
    """First finite number > 0 along the chain, else None."""
    for path in chain:
        number = to_number(get_path(obj, path))
        if number is not None and number > 0:
            return number
    return None


def resolve_text(obj: Any, chain: Sequence[str], default: Optional[str] = None) -> Optional[str]:
    """First non-empty string (numbers are stringified) along the chain."""
    for path in chain:
        value = get_path(obj, path)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


def resolve_raw(obj: Any, chain: Sequence[str]) -> Any:
    """First non-None raw value along the chain."""
    for path in chain:
        value = get_path(obj, path)
        if value is not None:
            return value
    return None


# ============================================
# Shape Matchers
# ============================================

def _dicts(items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def top_level_list(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """[{...}, {...}] (a leading null is tolerated, nested lists are not)."""
    if not isinstance(payload, list):
        return None
    if any(isinstance(item, list) for item in payload):
        return None
    return _dicts(payload)


def nested_wrapper(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """[null, [{...}, {...}]]"""
    if isinstance(payload, list) and len(payload) >= 2 and payload[0] is None and isinstance(payload[1], list):
        return _dicts(payload[1])
    return None


def under_key(key: str) -> ShapeMatcher:
    """{key: [{...}]}, key may be a dotted path."""

    def matcher(payload: Any) -> Optional[List[Dict[str, Any]]]:
        value = get_path(payload, key)
        if isinstance(value, list):
            return _dicts(value)
        return None

    matcher.__name__ = f"under_key({key})"
    return matcher


def keyed_values(key: str) -> ShapeMatcher:
    """{key: {name: {...}, name2: {...}}} flattened to a list with "_name" set."""

    def matcher(payload: Any) -> Optional[List[Dict[str, Any]]]:
        value = get_path(payload, key)
        if not isinstance(value, dict) or not value:
            return None
        if not all(isinstance(v, dict) for v in value.values()):
            return None
        return [dict(v, _name=name) for name, v in value.items()]

    matcher.__name__ = f"keyed_values({key})"
    return matcher


def first_list_where(predicate: Callable[[Dict[str, Any]], bool]) -> ShapeMatcher:
    """Any dict value that is a list whose first item satisfies predicate."""

    def matcher(payload: Any) -> Optional[List[Dict[str, Any]]]:
        if not isinstance(payload, dict):
            return None
        for value in payload.values():
            if isinstance(value, list) and value and isinstance(value[0], dict) and predicate(value[0]):
                return _dicts(value)
        return None

    matcher.__name__ = "first_list_where"
    return matcher


def discover_shape(
    payload: Any,
    matchers: Sequence[ShapeMatcher],
    exchange: str,
    category: str
) -> List[Dict[str, Any]]:
    """
    Run matchers in order and return the first match.

    A payload no matcher recognizes is a normalization gap: logged, and an
    empty list is returned.
    """
    for matcher in matchers:
        items = matcher(payload)
        if items is not None:
            return items

    if isinstance(payload, dict):
        details = f"top-level keys: {sorted(payload.keys())[:10]}"
    else:
        details = f"payload type: {type(payload).__name__}"
    log_normalization_gap(exchange, category, details)
    return []


# ============================================
# Side Inference
# ============================================

LONG_WORDS = {"long", "buy", "bid", "b"}
SHORT_WORDS = {"short", "sell", "ask", "s"}


def infer_side(explicit: Any, size: Optional[float]) -> PositionSide:
    """
    Explicit side field first, then the sign of size.

    Example:
        >>> infer_side("BOTH", -0.5)
        <PositionSide.SHORT: 'short'>
    """
    if isinstance(explicit, str):
        word = explicit.strip().lower()
        if word in LONG_WORDS:
            return PositionSide.LONG
        if word in SHORT_WORDS:
            return PositionSide.SHORT

    if size is not None:
        if size > 0:
            return PositionSide.LONG
        if size < 0:
            return PositionSide.SHORT

    return PositionSide.UNKNOWN
