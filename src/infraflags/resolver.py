"""Resolve which flags are deployed for an application as of one change set.

Three steps, each of which can fail on its own:

1. pick the change set (HEAD unless one is given),
2. search for the application's flag component,
3. fetch and parse the component's computed projection.

Nothing is cached: every call reads the platform's live state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, List, Optional

from infraflags.config import DEFAULT_SCHEMA_KIND
from infraflags.errors import (
    ComponentNotFoundError,
    ConfigurationError,
    ProjectionParseError,
    SnapshotResolutionError,
    TransportError,
)
from infraflags.mapping import BY_FLAG, PROJECTIONS, FlagMapping
from infraflags.platform import ComponentRef, PlatformClient, SearchPredicate

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Deployed state for one application at one change set."""

    application: str
    snapshot_id: str
    component: ComponentRef
    mapping: FlagMapping
    environment: Optional[str] = None
    deployed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class _Deadline:
    """Total time budget shared by every platform call of one resolution."""

    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        self.expires = None if timeout is None else monotonic() + timeout

    def remaining(self, step: str) -> Optional[float]:
        if self.expires is None:
            return None
        left = self.expires - monotonic()
        if left <= 0:
            raise TransportError(
                f"Timed out after {self.timeout:.1f}s before {step}",
                hint="Raise the timeout or retry once the platform responds faster.",
                kind="timeout",
            )
        return left


def _decode_projection(raw: Any, projection: str, ref: ComponentRef) -> Any:
    if raw is None:
        raise ProjectionParseError(
            f"Component {ref.id} has no '{projection}' output",
            hint=f"Check that the component's schema computes /domain/{projection} and that the change set has been applied.",
            raw=raw,
            component=ref.id,
        )
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProjectionParseError(
                f"'{projection}' output of component {ref.id} is not valid JSON: {exc}",
                hint="Fix the attribute function producing this output; the raw value is included below.",
                raw=raw,
                component=ref.id,
            ) from exc
    return raw


def resolve_deployed_flags(
    platform: PlatformClient,
    application: str,
    environment: Optional[str] = None,
    snapshot_ref: Optional[str] = None,
    *,
    schema_kind: str = DEFAULT_SCHEMA_KIND,
    projection: str = BY_FLAG,
    timeout: Optional[float] = None,
) -> Resolution:
    """Fetch the FlagMapping for ``application`` from the platform.

    Args:
        platform: Client implementing the three platform operations.
        application: Application name the flag component is declared for.
        environment: Optional environment whose flag slice is extracted.
        snapshot_ref: Change set id; the current baseline when omitted.
        schema_kind: Schema name of the flag component.
        projection: Computed output to read (``byFlag`` or ``byEnvironment``).
        timeout: Total seconds allowed for all platform calls.

    Returns:
        Resolution carrying the mapping, the selected component and warnings.

    Raises:
        ConfigurationError: If the application name is empty.
        SnapshotResolutionError: If no change set can be resolved.
        ComponentNotFoundError: If no component matches the application.
        ProjectionParseError: If the projection is absent or malformed.
        TransportError: On network failure, auth failure or timeout.
    """
    if not application or not application.strip():
        raise ConfigurationError(
            "Application name is empty",
            hint="Pass the application name exactly as declared on its flag component.",
        )
    if projection not in PROJECTIONS:
        raise ConfigurationError(
            f"Unknown projection '{projection}'",
            hint=f"Use one of: {', '.join(PROJECTIONS)}.",
        )

    deadline = _Deadline(timeout)
    warnings: List[str] = []

    snapshot_id = snapshot_ref
    if not snapshot_id:
        snapshot_id = platform.resolve_current_baseline(timeout=deadline.remaining("resolving the current change set"))
        if not snapshot_id:
            raise SnapshotResolutionError(
                "No current (HEAD) change set is available",
                hint="Confirm the workspace has a HEAD change set and the token can read it, or pass a change set id.",
            )
    LOGGER.info(f"Reading deployed flags for '{application}' from change set {snapshot_id}")

    predicate = SearchPredicate(kind=schema_kind, application=application)
    matches = platform.search(snapshot_id, predicate, timeout=deadline.remaining("searching components"))
    if not matches:
        raise ComponentNotFoundError(
            f"No {schema_kind} component found for application '{application}' in change set {snapshot_id}",
            hint=(
                f"Create an {schema_kind} component with application '{application}' and apply it, "
                "or check the application name for typos (names are case-sensitive)."
            ),
            application=application,
            schema=schema_kind,
            snapshot=snapshot_id,
        )
    selected = matches[0]
    if len(matches) > 1:
        ids = ", ".join(ref.id for ref in matches)
        message = (
            f"{len(matches)} {schema_kind} components match application '{application}' ({ids}); "
            f"using {selected.id}. Remove the duplicates."
        )
        LOGGER.warning(message)
        warnings.append(message)

    raw = platform.get_computed_projection(
        snapshot_id,
        selected,
        projection,
        timeout=deadline.remaining("fetching the flag projection"),
    )
    payload = _decode_projection(raw, projection, selected)
    try:
        mapping = FlagMapping.from_projection(projection, payload)
    except ProjectionParseError as exc:
        exc.details.setdefault("component", selected.id)
        raise

    deployed: List[str] = []
    if environment is not None:
        if environment not in mapping.environments():
            message = (
                f"Environment '{environment}' is not declared by any flag of '{application}' "
                f"(known: {', '.join(mapping.environments()) or 'none'})"
            )
            LOGGER.warning(message)
            warnings.append(message)
        deployed = mapping.flags_for(environment)

    return Resolution(
        application=application,
        snapshot_id=snapshot_id,
        component=selected,
        mapping=mapping,
        environment=environment,
        deployed=deployed,
        warnings=warnings,
    )
