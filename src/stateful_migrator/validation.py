"""
Validation of Kubernetes object names, label keys and label values.

Names end up in URL paths (including Karmada proxy paths) and label
values end up in selector query strings, so both are checked before use.
"""

from __future__ import annotations

import re

__all__ = [
    "ValidationError",
    "validate_dns_label",
    "validate_dns_subdomain",
    "validate_label_key",
    "validate_label_value",
]


class ValidationError(Exception):
    """Raised when a name or label fails validation."""


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# RFC 1123 label: namespaces, cluster names.
_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

# RFC 1123 subdomain: most object names (pods, workloads, policies).
_DNS_SUBDOMAIN = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)

# Label name part / label value.
_QUALIFIED_NAME = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")


def validate_dns_label(name: str, label: str = "name") -> str:
    """Validate an RFC 1123 label (max 63 chars) and return it."""
    if not name or len(name) > 63 or not _DNS_LABEL.match(name):
        raise ValidationError(
            f"Invalid {label}: {name!r} (must be 1-63 lowercase alphanumeric "
            f"characters or '-', starting and ending with alphanumeric)"
        )
    return name


def validate_dns_subdomain(name: str, label: str = "name") -> str:
    """Validate an RFC 1123 subdomain (max 253 chars) and return it."""
    if not name or len(name) > 253 or not _DNS_SUBDOMAIN.match(name):
        raise ValidationError(
            f"Invalid {label}: {name!r} (must be a lowercase RFC 1123 subdomain)"
        )
    return name


def validate_label_key(key: str) -> str:
    """Validate a label key of the form ``[prefix/]name``."""
    prefix, sep, name = key.rpartition("/")
    if sep:
        try:
            validate_dns_subdomain(prefix, "label key prefix")
        except ValidationError as exc:
            raise ValidationError(f"Invalid label key {key!r}: {exc}") from exc
    if not name or len(name) > 63 or not _QUALIFIED_NAME.match(name):
        raise ValidationError(f"Invalid label key: {key!r}")
    return key


def validate_label_value(value: str) -> str:
    """Validate a label value. The empty string is a legal value."""
    if value == "":
        return value
    if len(value) > 63 or not _QUALIFIED_NAME.match(value):
        raise ValidationError(f"Invalid label value: {value!r}")
    return value
