"""Render reconciliation results for humans and CI status checks."""

from __future__ import annotations

from typing import List, Optional, Sequence

from infraflags.reconcile import INDETERMINATE, SATISFIED, UNSATISFIED, ReconciliationResult

EXIT_SATISFIED = 0
EXIT_UNSATISFIED = 1
EXIT_FAILURE = 2

EXIT_CODES = {
    SATISFIED: EXIT_SATISFIED,
    UNSATISFIED: EXIT_UNSATISFIED,
    INDETERMINATE: EXIT_FAILURE,
}


def exit_code(result: ReconciliationResult) -> int:
    """0 only when satisfied; an unknown status fails closed."""
    return EXIT_CODES.get(result.status, EXIT_FAILURE)


def _bullets(items: Sequence[str]) -> List[str]:
    if not items:
        return ["  (none)"]
    return [f"  - {item}" for item in items]


def render_text(result: ReconciliationResult, application: Optional[str] = None) -> str:
    """Plain-text report listing required, deployed and missing flags."""
    subject = f"'{application}'" if application else "application"
    environment = result.environment or "?"
    lines = [f"Infrastructure flags for {subject} in environment '{environment}': {result.status.upper()}", ""]

    lines.append("Required flags:")
    lines.extend(_bullets(result.required))

    if result.status == INDETERMINATE:
        error = result.error or {}
        lines.append("")
        lines.append(f"Deployed state could not be determined ({error.get('error', 'unknown_error')}):")
        lines.append(f"  {error.get('message', '')}")
        if error.get("hint"):
            lines.append(f"  Next step: {error['hint']}")
        if error.get("raw") is not None:
            lines.append(f"  Raw payload: {error['raw']!r}")
    else:
        lines.append(f"Deployed flags in '{environment}':")
        lines.extend(_bullets(result.deployed))
        if result.status == UNSATISFIED:
            lines.append("Missing flags:")
            lines.extend(_bullets(result.missing))
            lines.append("")
            lines.append(
                "Enable the missing flags for this environment on the application's flag component, "
                "apply the change set, then re-run the check."
            )

    if result.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  ! {warning}" for warning in result.warnings)

    return "\n".join(lines)
