"""HTTP adapter for the System Initiative public API."""

from __future__ import annotations

import logging
from time import monotonic
from typing import Any, Dict, List, Optional

import requests

from infraflags.config import DEFAULT_API_URL, DEFAULT_TIMEOUT, Settings, validate_token_format
from infraflags.errors import ProjectionParseError, SnapshotResolutionError, TransportError
from infraflags.platform import ComponentRef, SearchPredicate

LOGGER = logging.getLogger(__name__)

APPLICATION_ATTRIBUTE = "/domain/application"
SEARCH_PAGE_SIZE = 50
# Guard against a server that keeps handing back the same cursor
MAX_SEARCH_PAGES = 100


class SystemInitiativeClient:
    """PlatformClient backed by ``requests`` against api.systeminit.com.

    Use as a context manager so the underlying session is closed even when
    the run is interrupted.
    """

    def __init__(
        self,
        token: str,
        workspace_id: str,
        api_url: str = DEFAULT_API_URL,
        default_timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.token = validate_token_format(token)
        self.workspace_id = workspace_id
        self.api_url = api_url.rstrip("/")
        self.default_timeout = default_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        })

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "SystemInitiativeClient":
        return cls(
            token=settings.api_token or "",
            workspace_id=settings.resolved_workspace(),
            api_url=settings.api_url,
            default_timeout=settings.timeout,
            session=session,
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "SystemInitiativeClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _workspace_path(self, *parts: str) -> str:
        return "/".join([f"/v1/w/{self.workspace_id}", *parts])

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        wait = self.default_timeout if timeout is None else timeout
        LOGGER.debug(f"{method} {url} (timeout {wait:.1f}s)")
        try:
            response = self.session.request(method, url, json=json_body, timeout=wait)
        except requests.Timeout as exc:
            raise TransportError(
                f"{method} {url} timed out after {wait:.1f}s",
                hint="Retry later or raise --timeout; the platform did not answer in time.",
                kind="timeout",
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"Cannot reach {self.api_url}: {exc}",
                hint="Check network access and SI_API_URL.",
                kind="unreachable",
            ) from exc

        if response.status_code == 401:
            raise TransportError(
                "The platform rejected the API token (HTTP 401)",
                hint="Generate a new token (it may have expired) and export it as SI_API_TOKEN.",
                kind="auth",
                status_code=401,
            )
        if response.status_code >= 400:
            raise TransportError(
                f"{method} {path} failed with HTTP {response.status_code}: {response.text[:200]}",
                hint="Inspect the platform status and the request above.",
                kind="http",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {path} returned a non-JSON body",
                hint="Check that SI_API_URL points at the System Initiative API.",
                kind="protocol",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise TransportError(
                f"{method} {path} returned {type(body).__name__}, expected an object",
                hint="Check that SI_API_URL points at the System Initiative API.",
                kind="protocol",
                status_code=response.status_code,
            )
        return body

    # ------------------------------------------------------------------ #
    # PlatformClient
    # ------------------------------------------------------------------ #

    def whoami(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Return the identity the token authenticates as."""
        return self._request("GET", "/whoami", timeout=timeout)

    def resolve_current_baseline(self, timeout: Optional[float] = None) -> Optional[str]:
        try:
            body = self._request("GET", self._workspace_path("change-sets"), timeout=timeout)
        except TransportError as exc:
            if exc.status_code in (403, 404):
                raise SnapshotResolutionError(
                    f"Workspace {self.workspace_id} is not accessible (HTTP {exc.status_code})",
                    hint="Confirm SI_WORKSPACE_ID and that the token was issued for this workspace.",
                    workspace=self.workspace_id,
                ) from exc
            raise

        change_sets = _expect(body.get("changeSets"), list, "changeSets", default=[])
        for change_set in change_sets:
            if isinstance(change_set, dict) and change_set.get("isHead"):
                return change_set.get("id")
        for change_set in change_sets:
            if isinstance(change_set, dict) and change_set.get("name") == "HEAD":
                return change_set.get("id")
        return None

    def search(
        self,
        snapshot_id: str,
        predicate: SearchPredicate,
        timeout: Optional[float] = None,
    ) -> List[ComponentRef]:
        """Collect every matching component, following pagination cursors.

        ``timeout`` bounds the whole search, not each page.
        """
        path = self._workspace_path("change-sets", snapshot_id, "components", "search")
        budget = self.default_timeout if timeout is None else timeout
        expires = monotonic() + budget
        refs: List[ComponentRef] = []
        cursor: Optional[str] = None
        for page_number in range(1, MAX_SEARCH_PAGES + 1):
            remaining = expires - monotonic()
            if remaining <= 0:
                raise TransportError(
                    f"Component search ran out of its {budget:.1f}s budget before page {page_number}",
                    hint="Retry later or raise --timeout; the platform did not answer in time.",
                    kind="timeout",
                )
            body: Dict[str, Any] = {
                "schemaName": predicate.kind,
                "attributes": {APPLICATION_ATTRIBUTE: predicate.application},
                "limit": SEARCH_PAGE_SIZE,
            }
            if cursor:
                body["cursor"] = cursor
            try:
                page = self._request("POST", path, timeout=remaining, json_body=body)
            except TransportError as exc:
                if exc.status_code == 404:
                    raise SnapshotResolutionError(
                        f"Change set {snapshot_id} does not exist in workspace {self.workspace_id}",
                        hint="Pass an existing change set id, or omit it to read the HEAD change set.",
                        snapshot=snapshot_id,
                    ) from exc
                raise
            refs.extend(_component_refs(_expect(page.get("components"), list, "components", default=[])))
            cursor = _expect(page.get("nextCursor"), str, "nextCursor", default=None)
            if not cursor:
                return refs
        raise TransportError(
            f"Component search did not finish after {MAX_SEARCH_PAGES} pages",
            hint="The platform kept returning a pagination cursor; report this to the platform operators.",
            kind="protocol",
        )

    def get_computed_projection(
        self,
        snapshot_id: str,
        ref: ComponentRef,
        projection_name: str,
        timeout: Optional[float] = None,
    ) -> Any:
        path = self._workspace_path("change-sets", snapshot_id, "components", ref.id)
        body = self._request("GET", path, timeout=timeout)
        component = _component_section(body, body.get("component"), "component", ref)
        attributes = _component_section(body, component.get("attributes"), "component.attributes", ref)
        attribute_path = f"/domain/{projection_name}"
        if attribute_path in attributes:
            return attributes[attribute_path]
        domain = _component_section(body, component.get("domain"), "component.domain", ref)
        return domain.get(projection_name)


def _expect(value: Any, expected: type, field: str, default: Any) -> Any:
    """Return ``value`` if it has the expected JSON type; ``None`` yields ``default``."""
    if value is None:
        return default
    if not isinstance(value, expected):
        raise TransportError(
            f"Field '{field}' is {type(value).__name__}, expected {expected.__name__}",
            hint="Check that SI_API_URL points at a compatible System Initiative API.",
            kind="protocol",
        )
    return value


def _component_section(body: Dict[str, Any], value: Any, field: str, ref: ComponentRef) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProjectionParseError(
            f"Component {ref.id}: '{field}' is {type(value).__name__}, expected an object",
            hint="Inspect the component in the platform; its attribute tree is not in the expected shape.",
            raw=body,
            component=ref.id,
        )
    return value


def _component_refs(items: List[Any]) -> List[ComponentRef]:
    refs = []
    for item in items:
        if isinstance(item, str):
            refs.append(ComponentRef(id=item))
        elif isinstance(item, dict) and item.get("id"):
            refs.append(ComponentRef(id=str(item["id"]), name=item.get("name")))
    return refs
