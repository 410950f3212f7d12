"""Protocols and lightweight model types."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class WebsiteData:
    """Display metadata resolved for one URL. Every field is optional."""

    title: str | None = None
    description: str | None = None
    icon: str | None = None

    def is_empty(self) -> bool:
        return not (self.title or self.description)

    def to_dict(self) -> dict[str, str]:
        """Return only the fields that carry a value."""
        output: dict[str, str] = {}
        if self.title:
            output["title"] = self.title
        if self.description:
            output["description"] = self.description
        if self.icon:
            output["icon"] = self.icon
        return output

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WebsiteData:
        def _text(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) and value else None

        return cls(title=_text("title"), description=_text("description"), icon=_text("icon"))


@dataclass(frozen=True)
class ProviderResult:
    """Diagnostic record of one provider attempt during a resolution."""

    provider: str
    success: bool
    has_data: bool
    timestamp: float
    error: str | None = None


class KeyValueStore(Protocol):
    """Contract for the persistent string store backing the cache and breaker."""

    def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    def set(self, key: str, value: str) -> None:
        """Store a value, raising StorageError when it cannot be written."""

    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""

    def keys(self) -> Iterator[str]:
        """Iterate over stored keys in insertion order."""


class Provider(Protocol):
    """Contract for metadata API adapters."""

    name: str

    def fetch(self, url: str) -> WebsiteData:
        """Return metadata for a URL, or an empty WebsiteData on any failure."""
