import dataclasses

import pytest

from infraflags.reconcile import INDETERMINATE, SATISFIED, UNSATISFIED, indeterminate, reconcile
from infraflags.report import EXIT_FAILURE, EXIT_SATISFIED, EXIT_UNSATISFIED, exit_code, render_text


@pytest.mark.parametrize("deployed", [[], ["redis"], ["baseline", "redis", "postgres"]])
def test_empty_requirements_always_satisfied(deployed):
    result = reconcile([], deployed)
    assert result.status == SATISFIED
    assert result.missing == ()


def test_missing_flag_reported():
    result = reconcile(["baseline", "redis"], ["baseline"])
    assert result.status == UNSATISFIED
    assert result.missing == ("redis",)


def test_missing_keeps_required_order():
    result = reconcile(["redis", "baseline"], [])
    assert result.missing == ("redis", "baseline")


def test_no_case_folding():
    result = reconcile(["Redis"], ["redis"])
    assert result.status == UNSATISFIED
    assert result.missing == ("Redis",)


def test_all_present_is_satisfied():
    result = reconcile(["redis", "baseline"], ["baseline", "postgres", "redis"], environment="prod")
    assert result.satisfied
    assert result.environment == "prod"
    assert result.deployed == ("baseline", "postgres", "redis")


def test_unknown_flag_is_simply_missing():
    result = reconcile(["not-a-real-flag"], ["baseline"])
    assert result.missing == ("not-a-real-flag",)


def test_result_is_immutable():
    result = reconcile(["redis"], [])
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.status = SATISFIED


def test_result_sequences_cannot_be_mutated():
    required = ["redis"]
    result = reconcile(required, ["baseline"], warnings=["duplicate flag"])
    required.append("postgres")
    assert result.required == ("redis",)
    for field in (result.required, result.deployed, result.missing, result.warnings):
        assert isinstance(field, tuple)

    failed = indeterminate(["redis"], {"error": "transport_error"})
    with pytest.raises(TypeError):
        failed.error["error"] = "changed"


def test_reconcile_is_deterministic():
    first = reconcile(["a", "b", "c"], ["b"])
    second = reconcile(["a", "b", "c"], ["b"])
    assert first == second


def test_indeterminate_carries_error():
    error = {"error": "component_not_found", "message": "none", "hint": "create one"}
    result = indeterminate(["redis"], error, environment="prod")
    assert result.status == INDETERMINATE
    assert result.error == error
    assert result.to_payload()["error"]["error"] == "component_not_found"


def test_exit_codes():
    assert exit_code(reconcile([], [])) == EXIT_SATISFIED
    assert exit_code(reconcile(["redis"], [])) == EXIT_UNSATISFIED
    assert exit_code(indeterminate([], {"error": "transport_error"})) == EXIT_FAILURE
    assert EXIT_SATISFIED == 0 and EXIT_UNSATISFIED != 0 and EXIT_FAILURE != 0


def test_text_report_lists_missing_flags():
    text = render_text(reconcile(["baseline", "redis"], ["baseline"], environment="prod"), "web")
    assert "UNSATISFIED" in text
    assert "Missing flags:" in text
    assert "  - redis" in text
    assert "'prod'" in text


def test_text_report_for_indeterminate_includes_hint():
    error = {"error": "transport_error", "message": "timed out", "hint": "raise --timeout"}
    text = render_text(indeterminate(["redis"], error, environment="dev"), "web")
    assert "INDETERMINATE" in text
    assert "transport_error" in text
    assert "Next step: raise --timeout" in text
