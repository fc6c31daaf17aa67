import json

import pytest

from infraflags.platform import ComponentRef


class FakePlatform:
    """In-memory PlatformClient recording every call it receives."""

    def __init__(self, baseline="cs-head", components=None, projections=None, fail_with=None):
        self.baseline = baseline
        self.components = components if components is not None else [ComponentRef(id="c-1", name="web")]
        self.projections = projections if projections is not None else {}
        self.fail_with = fail_with or {}
        self.calls = []
        self.closed = False

    def _maybe_fail(self, op):
        error = self.fail_with.get(op)
        if error is not None:
            raise error

    def resolve_current_baseline(self, timeout=None):
        self.calls.append(("resolve_current_baseline", timeout))
        self._maybe_fail("resolve_current_baseline")
        return self.baseline

    def search(self, snapshot_id, predicate, timeout=None):
        self.calls.append(("search", snapshot_id, predicate, timeout))
        self._maybe_fail("search")
        return list(self.components)

    def get_computed_projection(self, snapshot_id, ref, projection_name, timeout=None):
        self.calls.append(("get_computed_projection", snapshot_id, ref.id, projection_name, timeout))
        self._maybe_fail("get_computed_projection")
        return self.projections.get((ref.id, projection_name))

    def whoami(self, timeout=None):
        self.calls.append(("whoami", timeout))
        self._maybe_fail("whoami")
        return {"userEmail": "ci@example.com"}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True


@pytest.fixture
def make_platform():
    return FakePlatform


@pytest.fixture
def by_flag():
    return {
        "baseline": ["dev", "pr", "preprod", "prod"],
        "redis": ["dev", "prod"],
        "postgres": ["prod"],
    }


@pytest.fixture
def fake_platform(by_flag):
    """Platform whose single component 'c-1' exposes byFlag as a JSON string."""
    return FakePlatform(projections={("c-1", "byFlag"): json.dumps(by_flag)})
