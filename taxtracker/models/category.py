"""
Category and setting models.

Categories label expenses. Expenses refer to a category by name only, so a
category can be renamed or deleted without touching the expenses that used it.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class Category:
    """
    An expense category.

    Attributes:
        id: Database ID
        name: Unique, case-sensitive display name
        icon: Presentation icon (usually an emoji)
        color: Presentation color as a hex string
    """

    id: Optional[int]
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None

    def __post_init__(self):
        """Normalize the name (preserve case for display)."""
        if self.name:
            self.name = self.name.strip()

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        """
        Create a Category from its snapshot representation.

        Raises:
            ValueError: If the record has no name
        """
        if not isinstance(data, dict) or not str(data.get("name") or "").strip():
            raise ValueError("Category record must be an object with a name")
        record_id = data.get("id")
        return cls(
            id=int(record_id) if record_id is not None else None,
            name=str(data["name"]),
            icon=data.get("icon"),
            color=data.get("color"),
        )

    @classmethod
    def from_row(cls, row) -> "Category":
        """Create a Category from a database row."""
        return cls(id=row[0], name=row[1], icon=row[2], color=row[3])


@dataclass
class Setting:
    """A small key/value configuration entry. Values are stored as JSON."""

    key: str
    value: Any = None

    @property
    def id(self) -> str:
        return self.key

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_row(cls, row) -> "Setting":
        return cls(key=row[0], value=json.loads(row[1]) if row[1] else None)


# Built-in categories seeded on first run: (name, color, icon)
DEFAULT_CATEGORIES = [
    ("Internet", "#4c9aff", "🌐"),
    ("Electricity", "#ffab00", "⚡"),
    ("Computer", "#36b37e", "💻"),
    ("Furniture", "#ff5630", "🪑"),
    ("Office Supplies", "#00b8d9", "📎"),
    ("Software", "#ff8b00", "💿"),
    ("Professional Services", "#00875a", "🤝"),
    ("Travel", "#5243aa", "✈️"),
    ("Mobile Device", "#ff991f", "📱"),
    ("Other", "#8993a4", "📋"),
]


def default_categories() -> list[Category]:
    """Build fresh, unsaved Category objects for the built-in set."""
    return [
        Category(id=None, name=name, icon=icon, color=color)
        for name, color, icon in DEFAULT_CATEGORIES
    ]
