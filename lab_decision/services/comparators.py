"""
Comparator evaluation for interpretation rules.

Thresholds are stored in a canonical shape per comparator:

    lt, lte, gt, gte   {"value": <number>}
    eq, neq            {"value": <number or string>} or {"flag": <string>}
    between            {"min": <number>, "max": <number>}
    in                 {"values": [...]}

A result value that cannot be read the way the comparator needs is simply
not a match.
"""

import math
import operator
from typing import Any, Dict, Optional

from ..models import Comparator

COMPARATOR_ALIASES: Dict[str, Comparator] = {
    "<": Comparator.LT,
    "<=": Comparator.LTE,
    ">": Comparator.GT,
    ">=": Comparator.GTE,
    "=": Comparator.EQ,
    "==": Comparator.EQ,
    "!=": Comparator.NEQ,
    "<>": Comparator.NEQ,
}

_ORDERING = {
    Comparator.LT: operator.lt,
    Comparator.LTE: operator.le,
    Comparator.GT: operator.gt,
    Comparator.GTE: operator.ge,
}


def parse_comparator(value: Any) -> Comparator:
    """Accept enum members, names like ``gte`` and symbols like ``>=``"""
    if isinstance(value, Comparator):
        return value
    text = str(value).strip().lower()
    if text in COMPARATOR_ALIASES:
        return COMPARATOR_ALIASES[text]
    return Comparator(text)


def as_number(value: Any) -> Optional[float]:
    """Read a value as a finite number, or None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def values_equal(observed: Any, expected: Any) -> bool:
    """Numeric equality when both sides are numbers, exact text match otherwise"""
    left, right = as_number(observed), as_number(expected)
    if left is not None and right is not None:
        return left == right
    observed_text, expected_text = _text(observed), _text(expected)
    if observed_text is None or expected_text is None:
        return False
    return observed_text == expected_text


def normalize_threshold(comparator: Comparator, threshold: Any) -> Dict[str, Any]:
    """Bring bare numbers and bare lists into the canonical shape"""
    if isinstance(threshold, dict):
        return dict(threshold)
    if comparator == Comparator.IN and isinstance(threshold, (list, tuple)):
        return {"values": list(threshold)}
    if comparator == Comparator.BETWEEN and isinstance(threshold, (list, tuple)) and len(threshold) == 2:
        return {"min": threshold[0], "max": threshold[1]}
    if comparator not in (Comparator.IN, Comparator.BETWEEN) and not isinstance(threshold, (list, tuple)):
        return {"value": threshold}
    raise ValueError(f"Threshold {threshold!r} does not fit comparator '{comparator.value}'")


def evaluate(comparator: Comparator, threshold: Dict[str, Any], value: Any, flag: Any = None) -> bool:
    """Test an observed value (and its reported flag) against a threshold"""
    if comparator in _ORDERING:
        observed, limit = as_number(value), as_number(threshold.get("value"))
        if observed is None or limit is None:
            return False
        return _ORDERING[comparator](observed, limit)

    if comparator in (Comparator.EQ, Comparator.NEQ):
        # A threshold value wins; the flag is only consulted without one
        if threshold.get("value") is not None:
            observed, expected = value, threshold["value"]
        else:
            observed, expected = flag, threshold.get("flag")
        if _text(observed) in (None, "") or expected is None:
            return False
        equal = values_equal(observed, expected)
        return equal if comparator == Comparator.EQ else not equal

    if comparator == Comparator.BETWEEN:
        observed = as_number(value)
        low, high = as_number(threshold.get("min")), as_number(threshold.get("max"))
        if observed is None or low is None or high is None:
            return False
        return low <= observed <= high

    if comparator == Comparator.IN:
        candidates = threshold.get("values")
        if not isinstance(candidates, list):
            return False
        return any(
            values_equal(observed, candidate)
            for candidate in candidates
            for observed in (value, flag)
            if _text(observed)
        )

    return False
