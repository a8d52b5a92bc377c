"""
URN codec for stable identifiers.

External catalog items use ``v2e::<provider>::<type>::<atomic_id>``:
    v2e::nvd::cve::CVE-2024-12233
    v2e::mitre::cwe::CWE-79
    v2e::mitre::capec::CAPEC-66
    v2e::mitre::attack::T1566
    v2e::ssg::ssg::rhel9-guide-ospp

Internal entities carry no resource type:
    v2e::note::42
    v2e::card::7
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from src.core.errors import ParseError

PREFIX = "v2e"
SEPARATOR = "::"
MAX_ATOMIC_ID_LENGTH = 256

ATOM_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
INTERNAL_ID_PATTERN = re.compile(r"^[0-9]+$")

STRICT_PATTERNS = {
    "cve": re.compile(r"^CVE-\d{4}-\d{4,}$"),
    "cwe": re.compile(r"^CWE-\d+$"),
    "capec": re.compile(r"^CAPEC-\d+$"),
    "attack": re.compile(r"^T\d{4}(?:\.\d{3})?$"),
}


class Provider(str, Enum):
    """Data source providers."""

    NVD = "nvd"
    MITRE = "mitre"
    SSG = "ssg"
    NOTE = "note"
    CARD = "card"


class ResourceType(str, Enum):
    """Lowercase external catalog categories."""

    CVE = "cve"
    CWE = "cwe"
    CAPEC = "capec"
    ATTACK = "attack"
    SSG = "ssg"


INTERNAL_PROVIDERS = {Provider.NOTE, Provider.CARD}

# Which resource types each external provider may serve
PROVIDER_TYPES: dict[Provider, set[ResourceType]] = {
    Provider.NVD: {ResourceType.CVE},
    Provider.MITRE: {ResourceType.CWE, ResourceType.CAPEC, ResourceType.ATTACK},
    Provider.SSG: {ResourceType.SSG},
}

# Catalog names used by bookmarks and cross references
ITEM_TYPE_TO_RESOURCE = {
    "CVE": ResourceType.CVE,
    "CWE": ResourceType.CWE,
    "CAPEC": ResourceType.CAPEC,
    "ATT&CK": ResourceType.ATTACK,
    "ATTACK": ResourceType.ATTACK,
    "SSG": ResourceType.SSG,
}

RESOURCE_TO_ITEM_TYPE = {
    ResourceType.CVE: "CVE",
    ResourceType.CWE: "CWE",
    ResourceType.CAPEC: "CAPEC",
    ResourceType.ATTACK: "ATT&CK",
    ResourceType.SSG: "SSG",
}


@dataclass(frozen=True)
class URN:
    """A parsed identifier. ``resource_type`` is None for internal entities."""

    provider: Provider
    atomic_id: str
    resource_type: ResourceType | None = None

    @property
    def is_internal(self) -> bool:
        return self.provider in INTERNAL_PROVIDERS

    @property
    def item_type(self) -> str | None:
        """Catalog name (CVE, CWE, CAPEC, ATT&CK, SSG) for external URNs."""
        if self.resource_type is None:
            return None
        return RESOURCE_TO_ITEM_TYPE[self.resource_type]

    def __str__(self) -> str:
        if self.resource_type is None:
            return SEPARATOR.join([PREFIX, self.provider.value, self.atomic_id])
        return SEPARATOR.join(
            [PREFIX, self.provider.value, self.resource_type.value, self.atomic_id]
        )

    def key(self) -> str:
        """The URN string, for use as a database key or lookup identifier."""
        return str(self)


def _validate_atom(resource_type: ResourceType | None, atomic_id: str, strict: bool) -> None:
    if not atomic_id:
        raise ParseError("atomic ID cannot be empty")
    if len(atomic_id) > MAX_ATOMIC_ID_LENGTH:
        raise ParseError(
            f"atomic ID length {len(atomic_id)} exceeds maximum {MAX_ATOMIC_ID_LENGTH}"
        )
    if not ATOM_PATTERN.match(atomic_id):
        raise ParseError(f"atomic ID '{atomic_id}' contains characters outside [A-Za-z0-9._-]")
    if strict and resource_type is not None:
        pattern = STRICT_PATTERNS.get(resource_type.value)
        if pattern is not None and not pattern.match(atomic_id):
            raise ParseError(
                f"atomic ID '{atomic_id}' does not match the {resource_type.value.upper()} format"
            )


def _provider(value: str) -> Provider:
    try:
        return Provider(value)
    except ValueError:
        raise ParseError(f"'{value}' is not a valid provider") from None


def _resource_type(value: str) -> ResourceType:
    try:
        return ResourceType(value)
    except ValueError:
        raise ParseError(f"'{value}' is not a valid resource type") from None


def new(
    provider: Provider | str,
    resource_type: ResourceType | str | None,
    atomic_id: str,
    strict: bool = False,
) -> URN:
    """Build a validated URN."""
    provider = _provider(provider.value if isinstance(provider, Provider) else provider)
    atomic_id = (atomic_id or "").strip()

    if provider in INTERNAL_PROVIDERS:
        if resource_type is not None:
            raise ParseError(f"internal provider '{provider.value}' takes no resource type")
        if not INTERNAL_ID_PATTERN.match(atomic_id):
            raise ParseError(f"{provider.value} id must be a decimal number, got '{atomic_id}'")
        return URN(provider=provider, atomic_id=atomic_id)

    if resource_type is None:
        raise ParseError(f"provider '{provider.value}' requires a resource type")
    rtype = _resource_type(
        resource_type.value if isinstance(resource_type, ResourceType) else resource_type
    )
    if rtype not in PROVIDER_TYPES[provider]:
        raise ParseError(
            f"provider '{provider.value}' cannot provide resource type '{rtype.value}'"
        )
    _validate_atom(rtype, atomic_id, strict)
    return URN(provider=provider, resource_type=rtype, atomic_id=atomic_id)


def parse(value: str, strict: bool = False) -> URN:
    """
    Parse a URN string.

    Args:
        value: ``v2e::<provider>::<type>::<atomic_id>`` or ``v2e::<note|card>::<id>``
        strict: Also enforce the per-catalog atomic ID formats

    Raises:
        ParseError: On any grammar violation
    """
    text = (value or "").strip()
    if not text:
        raise ParseError("empty URN string")

    parts = text.split(SEPARATOR)
    if parts[0] != PREFIX or len(parts) not in (3, 4):
        raise ParseError(
            f"expected 'v2e::<provider>::<type>::<atomic_id>', got '{text}'"
        )
    for i, part in enumerate(parts):
        if part == "":
            raise ParseError(f"empty part at position {i} in '{text}'")

    provider = _provider(parts[1])
    if len(parts) == 3:
        if provider not in INTERNAL_PROVIDERS:
            raise ParseError(f"provider '{provider.value}' requires a resource type")
        return new(provider, None, parts[2])
    if provider in INTERNAL_PROVIDERS:
        raise ParseError(f"internal provider '{provider.value}' takes no resource type")
    return new(provider, parts[2], parts[3], strict=strict)


def is_valid(value: str, strict: bool = False) -> bool:
    try:
        parse(value, strict=strict)
    except ParseError:
        return False
    return True


def provider_for(item_type: str, source: str = "") -> Provider:
    """
    Derive the provider for a catalog item.

    CVE maps to nvd, everything else to mitre; an explicit source
    of NVD or SSG overrides the default.
    """
    provider = Provider.NVD if item_type.upper() == "CVE" else Provider.MITRE
    if source:
        if source.upper() == "NVD":
            provider = Provider.NVD
        elif source.upper() == "SSG":
            provider = Provider.SSG
    if item_type.upper() == "SSG":
        provider = Provider.SSG
    return provider


def generate_item_urn(item_type: str, item_id: str, source: str = "") -> str:
    """Format the URN of an external catalog item (CVE, CWE, CAPEC, ATT&CK, SSG)."""
    rtype = ITEM_TYPE_TO_RESOURCE.get(item_type.upper())
    if rtype is None:
        raise ParseError(f"unknown item type '{item_type}'")
    return str(new(provider_for(item_type, source), rtype, item_id))


def note_urn(note_id: int) -> str:
    return f"{PREFIX}{SEPARATOR}{Provider.NOTE.value}{SEPARATOR}{note_id}"


def card_urn(card_id: int) -> str:
    return f"{PREFIX}{SEPARATOR}{Provider.CARD.value}{SEPARATOR}{card_id}"
