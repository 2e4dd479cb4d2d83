"""Data models for warninglist matching."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

ALL_TYPES = "ALL"

# Integral versions stay int, decimal ones become float
Version = Union[int, float]


class ComparisonType(Enum):
    """Supported warninglist comparison types."""

    STRING = "string"
    SUBSTRING = "substring"
    CIDR = "cidr"
    HOSTNAME = "hostname"
    REGEX = "regex"

    @classmethod
    def parse(cls, value: Any) -> Optional["ComparisonType"]:
        """Return the matching member, or None for an unknown type."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class WarninglistSummary:
    """An enabled warninglist reduced to what the matcher needs."""

    id: int
    name: str
    comparison_type: Optional[ComparisonType]
    types: tuple[str, ...] = (ALL_TYPES,)

    def applies_to(self, indicator_type: str) -> bool:
        """Check if this list is relevant for the given indicator type."""
        return ALL_TYPES in self.types or indicator_type in self.types

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.comparison_type.value if self.comparison_type else None,
            "types": list(self.types),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WarninglistSummary":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            comparison_type=ComparisonType.parse(data.get("type")),
            types=tuple(data.get("types") or (ALL_TYPES,)),
        )


@dataclass
class Warninglist:
    """A stored warninglist with its entries and applicable types."""

    id: int
    name: str
    description: str
    version: Version
    comparison_type: ComparisonType
    enabled: bool = False
    entries: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=lambda: [ALL_TYPES])

    def summary(self) -> WarninglistSummary:
        return WarninglistSummary(
            id=self.id,
            name=self.name,
            comparison_type=self.comparison_type,
            types=tuple(self.types),
        )


@dataclass
class ListDefinition:
    """A parsed warninglist definition as handed over by the update workflow."""

    name: str
    version: Any
    description: str
    comparison_type: str = ComparisonType.STRING.value
    entries: list[str] = field(default_factory=list)
    matching_attributes: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListDefinition":
        """
        Build a definition from a distributable list document.

        Missing version defaults to 1, missing type to "string", and a list
        of types is reduced to its first element.
        """
        list_type = data.get("type", ComparisonType.STRING.value)
        if isinstance(list_type, list):
            list_type = list_type[0] if list_type else ComparisonType.STRING.value
        return cls(
            name=data.get("name", ""),
            version=data.get("version", 1),
            description=data.get("description", ""),
            comparison_type=list_type,
            entries=list(data.get("list") or []),
            matching_attributes=list(data.get("matching_attributes") or []),
        )

    def validate(self) -> list[str]:
        """Return validation errors, empty if the definition can be stored."""
        errors: list[str] = []
        if not isinstance(self.name, str) or not self.name.strip():
            errors.append("name: must not be empty")
        if not isinstance(self.description, str) or not self.description.strip():
            errors.append("description: must not be empty")
        if self.parsed_version() is None:
            errors.append(f"version: must be numeric, got {self.version!r}")
        if ComparisonType.parse(self.comparison_type) is None:
            errors.append(f"type: unknown comparison type {self.comparison_type!r}")
        return errors

    def parsed_version(self) -> Optional[Version]:
        """Numeric value of the version (e.g. 3, "20240101", "1.5"), None if not numeric."""
        if isinstance(self.version, bool):
            return None
        try:
            number = Decimal(str(self.version).strip())
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        if number == number.to_integral_value():
            return int(number)
        return float(number)

    def applicable_types(self) -> list[str]:
        return list(self.matching_attributes) or [ALL_TYPES]

    def clean_entries(self) -> list[str]:
        """Entries with empty values removed."""
        return [v for v in self.entries if v]


@dataclass
class ApplyOutcome:
    """Result of storing a list definition."""

    list_id: Optional[int] = None
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    old_version: Optional[Version] = None

    @property
    def applied(self) -> bool:
        return self.list_id is not None and not self.errors and not self.skipped


@dataclass(frozen=True)
class LookupItem:
    """A single indicator submitted for warninglist checking."""

    type: str
    value: str
    to_ids: bool = False


@dataclass(frozen=True)
class WarninglistMatch:
    """A warninglist hit for one indicator."""

    warninglist_id: int
    warninglist_name: str
    match: str
    value: str


@dataclass
class AnnotationResult:
    """Per-item matches for a batch plus the batch-level aggregate."""

    matches: list[list[WarninglistMatch]] = field(default_factory=list)
    event_warnings: dict[int, str] = field(default_factory=dict)

    def add(self, position: int, match: WarninglistMatch) -> None:
        self.matches[position].append(match)
        self.event_warnings[match.warninglist_id] = match.warninglist_name

    @classmethod
    def empty(cls, size: int) -> "AnnotationResult":
        return cls(matches=[[] for _ in range(size)])
