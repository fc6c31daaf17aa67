import pytest

from infraflags.errors import ProjectionParseError
from infraflags.mapping import BY_ENVIRONMENT, BY_FLAG, FlagMapping, validate_projection


def test_by_flag_is_sorted_and_deduplicated():
    mapping = FlagMapping.from_by_flag({"redis": ["prod", "dev", "prod"], "baseline": ["pr"]})
    assert mapping.by_flag() == {"baseline": ["pr"], "redis": ["dev", "prod"]}


def test_by_environment_inverts_relation(by_flag):
    mapping = FlagMapping.from_by_flag(by_flag)
    assert mapping.by_environment() == {
        "dev": ["baseline", "redis"],
        "pr": ["baseline"],
        "preprod": ["baseline"],
        "prod": ["baseline", "postgres", "redis"],
    }


def test_projections_are_mutually_consistent(by_flag):
    mapping = FlagMapping.from_by_flag(by_flag)
    by_env = mapping.by_environment()
    for flag, envs in mapping.by_flag().items():
        for env in envs:
            assert flag in by_env[env]
    for env, flags in by_env.items():
        for flag in flags:
            assert env in mapping.by_flag()[flag]


def test_round_trip_through_by_environment(by_flag):
    mapping = FlagMapping.from_by_flag(by_flag)
    rebuilt = FlagMapping.from_by_environment(mapping.by_environment())
    assert rebuilt == mapping
    assert rebuilt.by_flag() == mapping.by_flag()


def test_flag_without_environments_kept_in_by_flag_only():
    mapping = FlagMapping.from_by_flag({"redis": [], "baseline": ["dev"]})
    assert mapping.by_flag() == {"baseline": ["dev"], "redis": []}
    assert mapping.by_environment() == {"dev": ["baseline"]}


def test_flags_for_environment(by_flag):
    mapping = FlagMapping.from_by_flag(by_flag)
    assert mapping.flags_for("dev") == ["baseline", "redis"]
    assert mapping.flags_for("staging") == []
    assert mapping.environments() == ["dev", "pr", "preprod", "prod"]
    assert mapping.flags() == ["baseline", "postgres", "redis"]


def test_from_projection_dispatch():
    by_env = {"prod": ["redis"]}
    assert FlagMapping.from_projection(BY_ENVIRONMENT, by_env).by_flag() == {"redis": ["prod"]}
    assert FlagMapping.from_projection(BY_FLAG, {"redis": ["prod"]}).by_environment() == by_env
    with pytest.raises(ValueError):
        FlagMapping.from_projection("byTeam", {})


@pytest.mark.parametrize(
    "payload",
    [
        ["redis"],
        "redis",
        {"redis": "prod"},
        {"redis": [1, 2]},
        None,
    ],
)
def test_invalid_shape_raises_projection_parse_error(payload):
    with pytest.raises(ProjectionParseError) as excinfo:
        validate_projection(payload)
    assert excinfo.value.raw == payload
    assert excinfo.value.hint


def test_to_payload_has_both_projections():
    mapping = FlagMapping.from_by_flag({"redis": ["prod"]})
    assert mapping.to_payload() == {"byFlag": {"redis": ["prod"]}, "byEnvironment": {"prod": ["redis"]}}
