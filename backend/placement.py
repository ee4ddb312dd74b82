"""
Deployment-target tagging for functions exported across the node boundary.

Usage:
    from placement import placed

    @placed("edge", export="run_inference")
    def run_inference() -> str: ...

The registry is metadata only: it records which logical node each exported
function belongs on. Moving execution between nodes is up to the runtime
that consumes it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import TypeVar

from core.errors import PlacementError
from logger_config import get_logger

logger = get_logger("placement")

F = TypeVar("F", bound=Callable)


@dataclass(frozen=True)
class Placement:
    """One exported function and the node it runs on."""

    export_name: str
    target: str
    qualname: str


class PlacementRegistry:
    """Export name -> Placement."""

    def __init__(self):
        self._placements: dict[str, Placement] = {}

    def register(self, func: Callable, target: str, export_name: str | None = None) -> Placement:
        export_name = export_name or func.__name__
        if not target:
            raise PlacementError(f"Empty deployment target for {export_name}")

        qualname = f"{func.__module__}.{func.__qualname__}"
        existing = self._placements.get(export_name)
        if existing is not None and existing.qualname != qualname:
            raise PlacementError(
                f"Export name {export_name!r} already used by {existing.qualname}"
            )

        placement = Placement(export_name, target, qualname)
        self._placements[export_name] = placement
        logger.debug(f"{export_name} -> {target}")
        return placement

    def get(self, export_name: str) -> Placement:
        try:
            return self._placements[export_name]
        except KeyError:
            raise PlacementError(f"No placement registered for {export_name!r}") from None

    def target_of(self, export_name: str) -> str:
        return self.get(export_name).target

    def validate(self, nodes: Iterable[str]):
        """Raise PlacementError if any placement names a node not in ``nodes``."""
        known = set(nodes)
        unknown = sorted(
            f"{p.export_name}@{p.target}" for p in self._placements.values() if p.target not in known
        )
        if unknown:
            raise PlacementError(
                f"Placements target undefined nodes: {', '.join(unknown)} "
                f"(known: {', '.join(sorted(known)) or 'none'})"
            )

    def __contains__(self, export_name: str) -> bool:
        return export_name in self._placements

    def __iter__(self) -> Iterator[Placement]:
        return iter(self._placements.values())

    def __len__(self) -> int:
        return len(self._placements)


# Global registry
_registry = PlacementRegistry()


def get_registry() -> PlacementRegistry:
    """Get the process-wide placement registry."""
    return _registry


def placed(
    target: str, export: str | None = None, registry: PlacementRegistry | None = None
) -> Callable[[F], F]:
    """Decorator tagging a function with a deployment target and export name."""

    def decorator(func: F) -> F:
        target_registry = registry if registry is not None else _registry
        func.__placement__ = target_registry.register(func, target, export)
        return func

    return decorator
