"""Explicit name registry for generated record constructors."""
from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .generator import RecordConstructor, RecordDescriptor


class ConstructorRegistryError(LookupError):
    """Raised when a constructor lookup fails."""


class ConstructorRegistry:
    """Mapping of constructor name to :class:`RecordConstructor`.

    Registration overwrites any constructor already stored under the same
    name. The registry is not synchronised; callers sharing one across threads
    must serialise registration themselves.
    """

    def __init__(self) -> None:
        """Create an empty registry."""
        self._constructors: dict[str, RecordConstructor] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._constructors

    def __len__(self) -> int:
        return len(self._constructors)

    def __iter__(self) -> Iterator[str]:
        return iter(self._constructors)

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def register(self, constructor: RecordConstructor) -> RecordConstructor | None:
        """Store *constructor* under its name, returning the one it replaced."""
        previous = self._constructors.get(constructor.name)
        self._constructors[constructor.name] = constructor
        return previous

    def get(self, name: str) -> RecordConstructor:
        """Return the constructor registered as *name*."""
        try:
            return self._constructors[name]
        except KeyError:
            available = ", ".join(sorted(self._constructors)) or "(none)"
            raise ConstructorRegistryError(
                f"No constructor registered as '{name}'. Available: {available}"
            ) from None

    def unregister(self, name: str) -> None:
        """Remove the constructor registered as *name*."""
        if self._constructors.pop(name, None) is None:
            raise ConstructorRegistryError(f"No constructor registered as '{name}'.")

    def invoke(self, name: str, *args: object, **kwargs: object) -> dict[str, object]:
        """Look up *name* and call it with the given arguments."""
        return self.get(name)(*args, **kwargs)

    def names(self) -> list[str]:
        """Return registered names in registration order."""
        return list(self._constructors)

    def descriptors(self) -> dict[str, RecordDescriptor]:
        """Return the descriptor behind each registered constructor."""
        return {name: item.descriptor for name, item in self._constructors.items()}


__all__ = ["ConstructorRegistry", "ConstructorRegistryError"]
