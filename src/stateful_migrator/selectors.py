"""
Conversion of a workload ``LabelSelector`` into a selector query string.

Follows the Kubernetes semantics: ``matchLabels`` entries become
equality requirements, ``matchExpressions`` become set-based ones, and
all requirements are ANDed.
"""

from __future__ import annotations

from .validation import ValidationError, validate_label_key, validate_label_value

__all__ = ["SelectorError", "selector_from_dict", "selector_from_labels"]


class SelectorError(ValueError):
    """Raised when a label selector cannot be converted."""


_SET_OPERATORS = {"In": "in", "NotIn": "notin"}
_EXISTS_OPERATORS = {"Exists": "", "DoesNotExist": "!"}


def _requirement(expr: dict) -> str:
    key = expr.get("key", "")
    operator = expr.get("operator", "")
    values = list(expr.get("values") or [])
    try:
        validate_label_key(key)
        for value in values:
            validate_label_value(value)
    except ValidationError as exc:
        raise SelectorError(str(exc)) from exc

    if operator in _SET_OPERATORS:
        if not values:
            raise SelectorError(
                f"operator {operator!r} on key {key!r} requires at least one value"
            )
        return f"{key} {_SET_OPERATORS[operator]} ({','.join(sorted(values))})"
    if operator in _EXISTS_OPERATORS:
        if values:
            raise SelectorError(
                f"operator {operator!r} on key {key!r} must not have values"
            )
        return f"{_EXISTS_OPERATORS[operator]}{key}"
    raise SelectorError(f"{operator!r} is not a valid label selector operator")


def selector_from_labels(labels: dict[str, str]) -> str:
    """Equality selector for a plain label map, keys sorted."""
    parts = []
    for key in sorted(labels):
        try:
            validate_label_key(key)
            validate_label_value(labels[key])
        except ValidationError as exc:
            raise SelectorError(str(exc)) from exc
        parts.append(f"{key}={labels[key]}")
    return ",".join(parts)


def selector_from_dict(selector: dict | None) -> str:
    """Convert a ``LabelSelector`` dict into a query string.

    An empty selector (``{}``) selects everything and yields ``""``.
    A missing selector is an error: selector-based workloads always
    carry one, and listing without it would match every pod.
    """
    if selector is None:
        raise SelectorError("workload has no pod selector")
    parts = []
    match_labels = selector.get("matchLabels") or {}
    if match_labels:
        parts.append(selector_from_labels(match_labels))
    for expr in selector.get("matchExpressions") or []:
        parts.append(_requirement(expr))
    return ",".join(parts)
