"""An in-memory object store that serves as a lister for cluster objects."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional

from .models import LabelSelector, NotFoundError


def _key(obj: Any) -> tuple[str, str]:
    return (getattr(obj, "namespace", "") or "", obj.name)


class ObjectStore:
    """Objects keyed by namespace and name, listable by label selector."""

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._objects: dict[tuple[str, str], Any] = {}
        for obj in objects:
            self.add(obj)

    def add(self, obj: Any) -> None:
        """Insert an object, replacing any with the same namespace and name."""
        self._objects[_key(obj)] = obj

    def get(self, name: str, namespace: str = "") -> Any:
        """Return the named object or raise NotFoundError."""
        try:
            return self._objects[(namespace, name)]
        except KeyError:
            raise NotFoundError(name, namespace) from None

    def list(self, selector: Optional[LabelSelector] = None) -> list:
        """Return the objects whose labels match the selector, in insertion order."""
        return [
            obj
            for obj in self._objects.values()
            if selector is None or selector.matches(getattr(obj, "labels", None))
        ]

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._objects.values())