"""Peer certificate subject parsing.

Extracts identity attributes from a Distinguished Name string such as
``"emailAddress=a@example.com,CN=Alice,O=Acme"``. Segments are split on a
bare comma; escaped or quoted commas inside values are not recognised.
"""

from __future__ import annotations

from dataclasses import dataclass

EMAIL_PREFIX = "emailAddress="
NAME_PREFIX = "CN="
ORGANIZATION_PREFIX = "O="
ORGANIZATION_UNIT_PREFIX = "OU="
COUNTRY_PREFIX = "C="
LOCALITY_PREFIX = "L="
STATE_PREFIX = "ST="

MISSING_NAME_ERROR = "Common name missing from peer cert"
MISSING_EMAIL_ERROR = "Email address missing from peer cert"

# Checked in order, first match wins
_PREFIX_FIELDS = (
    (EMAIL_PREFIX, "email"),
    (NAME_PREFIX, "name"),
    (ORGANIZATION_PREFIX, "organization"),
    (ORGANIZATION_UNIT_PREFIX, "organization_unit"),
    (COUNTRY_PREFIX, "country"),
    (LOCALITY_PREFIX, "locality"),
    (STATE_PREFIX, "state"),
)


@dataclass(frozen=True)
class Subject:
    """Identity attributes extracted from a peer certificate subject."""

    name: str | None = None
    email: str | None = None
    organization: str | None = None
    organization_unit: str | None = None
    country: str | None = None
    locality: str | None = None
    state: str | None = None
    errors: tuple[str, ...] = ()


def parse_subject(subject_field: str) -> Subject:
    """Parse a Distinguished Name string into a Subject.

    Unknown attributes are ignored and a repeated attribute keeps its last
    value. Only the common name and email address are required; each one
    that is missing adds a message to ``errors``.

    Args:
        subject_field: Comma-separated DN string.

    Returns:
        Parsed Subject. Never raises.
    """
    fields: dict[str, str] = {}

    for segment in subject_field.split(","):
        trimmed = segment.strip()
        for prefix, field in _PREFIX_FIELDS:
            if trimmed.startswith(prefix):
                fields[field] = trimmed[len(prefix):]
                break

    errors: list[str] = []
    if "name" not in fields:
        errors.append(MISSING_NAME_ERROR)
    if "email" not in fields:
        errors.append(MISSING_EMAIL_ERROR)

    return Subject(**fields, errors=tuple(errors))
