"""Maintenance catalog: the trackable task types and their intervals."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import jsonschema
import yaml

from .errors import ValidationError

CATALOG_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "title", "keywords"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "title": {"type": "string", "minLength": 1},
            "icon": {"type": "string"},
            "intervalKm": {"type": "number", "exclusiveMinimum": 0},
            "intervalMonths": {"type": "number", "exclusiveMinimum": 0},
            "keywords": {
                "type": "array",
                "items": {"type": "string", "minLength": 1},
                "minItems": 1,
            },
            "templateId": {"type": "string"},
        },
        "additionalProperties": False,
    },
}


@dataclass(frozen=True)
class Interval:
    """Distance and/or time interval between two services."""

    km: Optional[float] = None
    months: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.km is None and self.months is None

    def validate(self, field_name: str = "interval") -> None:
        """Raise ValidationError unless at least one positive component is set."""
        if self.is_empty:
            raise ValidationError(field_name, "needs intervalKm or intervalMonths")
        for name, value in (("km", self.km), ("months", self.months)):
            if value is not None and value <= 0:
                raise ValidationError(f"{field_name}.{name}", "must be positive")

    def describe(self) -> str:
        parts = []
        if self.km:
            parts.append(f"{self.km:,.0f} km")
        if self.months:
            parts.append(f"{self.months:g} mo")
        return " / ".join(parts) if parts else "-"

    def to_dict(self) -> Dict[str, float]:
        d = {}
        if self.km is not None:
            d["km"] = self.km
        if self.months is not None:
            d["months"] = self.months
        return d

    @classmethod
    def from_dict(cls, dct: Optional[Dict[str, Any]]) -> "Interval":
        dct = dct or {}
        return cls(km=dct.get("km"), months=dct.get("months"))


@dataclass(frozen=True)
class MaintenanceItemConfig:
    """One trackable task type."""

    id: str
    title: str
    interval: Interval
    keywords: Tuple[str, ...]
    template_id: str
    icon: str = ""

    def matches(self, title: str) -> bool:
        """Case-insensitive substring match of any keyword against a title."""
        return self.match_length(title) > 0

    def match_length(self, title: str) -> int:
        """Length of the longest keyword found in the title (0 if none)."""
        lowered = (title or "").lower()
        return max(
            (len(k) for k in self.keywords if k.lower() in lowered), default=0
        )


@dataclass(frozen=True)
class Catalog:
    """Immutable, ordered collection of catalog items."""

    items: Tuple[MaintenanceItemConfig, ...] = field(default_factory=tuple)

    def __post_init__(self):
        seen = set()
        for item in self.items:
            if item.id in seen:
                raise ValidationError("id", f"duplicate catalog item '{item.id}'")
            seen.add(item.id)
            item.interval.validate(f"{item.id}.interval")

    def __iter__(self) -> Iterator[MaintenanceItemConfig]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, item_id: str) -> Optional[MaintenanceItemConfig]:
        """Find an item by id."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def classify(self, title: str) -> Optional[MaintenanceItemConfig]:
        """
        Find the task type a free-text maintenance title refers to.

        Uses the same keyword rule as history matching. When several items
        match, the one with the longest matching keyword wins, so
        "oil filter" resolves to the filter item rather than the oil item.
        Ties go to catalog order.
        """
        best = None
        best_len = 0
        for item in self.items:
            length = item.match_length(title)
            if length > best_len:
                best, best_len = item, length
        return best

    @classmethod
    def from_dicts(cls, entries: List[Dict[str, Any]]) -> "Catalog":
        """Build a catalog from camelCase dicts (the YAML format)."""
        try:
            jsonschema.validate(instance=entries, schema=CATALOG_SCHEMA)
        except jsonschema.ValidationError as e:
            path = ".".join(str(p) for p in e.path) or "catalog"
            raise ValidationError(path, e.message) from e

        return cls(
            tuple(
                MaintenanceItemConfig(
                    id=dct["id"],
                    title=dct["title"],
                    interval=Interval(dct.get("intervalKm"), dct.get("intervalMonths")),
                    keywords=tuple(dct["keywords"]),
                    template_id=dct.get("templateId") or dct["id"],
                    icon=dct.get("icon", ""),
                )
                for dct in entries
            )
        )


DEFAULT_CATALOG_ITEMS: List[Dict[str, Any]] = [
    {
        "id": "oil",
        "title": "Engine oil change",
        "icon": "🛢️",
        "intervalKm": 5000,
        "intervalMonths": 6,
        "keywords": ["オイル", "oil"],
        "templateId": "oil",
    },
    {
        "id": "oil-filter",
        "title": "Oil filter replacement",
        "icon": "🔧",
        "intervalKm": 10000,
        "intervalMonths": 12,
        "keywords": ["オイルフィルター", "エレメント", "filter", "element"],
        "templateId": "oil-filter",
    },
    {
        "id": "tire-rotation",
        "title": "Tire rotation",
        "icon": "🔄",
        "intervalKm": 10000,
        "intervalMonths": 12,
        "keywords": ["タイヤ", "ローテ", "tire", "rotation"],
        "templateId": "tire-rotation",
    },
    {
        "id": "brake-fluid",
        "title": "Brake fluid replacement",
        "icon": "🛑",
        "intervalMonths": 24,
        "keywords": ["ブレーキフルード", "ブレーキオイル", "brake fluid"],
        "templateId": "brake-fluid",
    },
    {
        "id": "air-filter",
        "title": "Air filter replacement",
        "icon": "💨",
        "intervalKm": 30000,
        "intervalMonths": 24,
        "keywords": ["エアフィルター", "エアクリーナー", "air filter", "air cleaner"],
        "templateId": "air-filter",
    },
    {
        "id": "wiper",
        "title": "Wiper blade replacement",
        "icon": "🌧️",
        "intervalMonths": 12,
        "keywords": ["ワイパー", "wiper"],
        "templateId": "wiper",
    },
]

DEFAULT_CATALOG = Catalog.from_dicts(DEFAULT_CATALOG_ITEMS)


def load_catalog(filename: Union[str, Path, None] = None) -> Catalog:
    """Load a catalog from a YAML file, or the built-in one when no file is given."""
    if filename is None:
        return DEFAULT_CATALOG
    with open(filename, "rb") as fp:
        data = yaml.load(fp, Loader=yaml.SafeLoader)
    if isinstance(data, dict):
        data = data.get("items")
    return Catalog.from_dicts(data or [])
