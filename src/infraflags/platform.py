"""Narrow interface to the infrastructure-automation platform.

The resolver only ever needs three operations. Platform-specific wire
details live in ``infraflags.adapters``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol


@dataclass(frozen=True)
class SearchPredicate:
    """Compound filter: schema kind AND application name equality."""
    kind: str
    application: str


@dataclass(frozen=True)
class ComponentRef:
    """Reference to one component returned by a search."""
    id: str
    name: Optional[str] = None


class PlatformClient(Protocol):
    """Operations the deployed-state resolver relies on.

    ``timeout`` is the number of seconds the call may take; ``None`` means
    the implementation default.
    """

    def resolve_current_baseline(self, timeout: Optional[float] = None) -> Optional[str]:
        """Return the id of the change set representing live state."""
        ...

    def search(
        self,
        snapshot_id: str,
        predicate: SearchPredicate,
        timeout: Optional[float] = None,
    ) -> List[ComponentRef]:
        """Return matching components in the platform's stable order."""
        ...

    def get_computed_projection(
        self,
        snapshot_id: str,
        ref: ComponentRef,
        projection_name: str,
        timeout: Optional[float] = None,
    ) -> Any:
        """Return the named computed output of a component, or None if absent."""
        ...
