"""Read the flags an application declares it needs.

The artifact is a YAML document (JSON works too) with a single recognized key::

    flags:
      - baseline
      - redis

A missing file means "no requirements". Corrupt syntax is an error; a
well-formed document that lacks the key, or holds something other than a
list of strings under it, is treated as empty with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml

from infraflags.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

DEFAULT_REQUIREMENTS_FILE = "infraflags.yaml"
DEFAULT_REQUIREMENTS_KEY = "flags"

KIND_OK = "ok"
KIND_ABSENT = "absent"
KIND_PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class RequirementsRead:
    """Outcome of reading a requirement artifact.

    ``kind`` is ``ok``, ``absent`` or ``parse_error``; callers are expected to
    branch on it explicitly rather than catch exceptions.
    """

    kind: str
    path: str
    flags: List[str] = field(default_factory=list)
    diagnostic: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def dedupe(flags: List[str]) -> List[str]:
    """Drop repeated flags, keeping the first occurrence of each."""
    seen = set()
    unique: List[str] = []
    for flag in flags:
        if flag in seen:
            continue
        seen.add(flag)
        unique.append(flag)
    return unique


def _describe_yaml_error(exc: yaml.YAMLError) -> str:
    mark = getattr(exc, "problem_mark", None)
    problem = getattr(exc, "problem", None) or str(exc)
    if mark is not None:
        return f"{problem} (line {mark.line + 1}, column {mark.column + 1})"
    return problem


def _flags_from_document(document: Any, key: str, path: str) -> RequirementsRead:
    warnings: List[str] = []

    if document is None:
        warnings.append(f"{path} is empty; no flags required")
    elif not isinstance(document, dict):
        warnings.append(
            f"{path} is not a mapping (got {type(document).__name__}); expected a '{key}' key"
        )
    elif key not in document:
        warnings.append(f"{path} has no '{key}' key; no flags required")
    else:
        raw = document[key]
        if raw is None:
            warnings.append(f"'{key}' in {path} is empty; no flags required")
        elif not isinstance(raw, list):
            warnings.append(f"'{key}' in {path} must be a list of strings (got {type(raw).__name__})")
        elif not all(isinstance(item, str) for item in raw):
            bad = [item for item in raw if not isinstance(item, str)]
            warnings.append(f"'{key}' in {path} must contain only strings (found {bad!r})")
        else:
            return RequirementsRead(kind=KIND_OK, path=path, flags=dedupe(raw), warnings=warnings)

    for message in warnings:
        LOGGER.warning(message)
    return RequirementsRead(kind=KIND_OK, path=path, flags=[], warnings=warnings)


def parse_requirements(
    path: Union[str, Path],
    key: str = DEFAULT_REQUIREMENTS_KEY,
) -> RequirementsRead:
    """Read a requirement artifact into a tagged result.

    Args:
        path: Location of the YAML/JSON artifact.
        key: Top-level key holding the list of flag names.

    Returns:
        RequirementsRead with ``kind`` set to ``absent`` when the file does not
        exist, ``parse_error`` when it cannot be read or parsed, else ``ok``.
    """
    target = Path(path)
    display = str(target)
    if not target.exists():
        LOGGER.debug(f"No requirement artifact at {display}")
        return RequirementsRead(kind=KIND_ABSENT, path=display)

    try:
        text = target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return RequirementsRead(kind=KIND_PARSE_ERROR, path=display, diagnostic=f"Cannot read {display}: {exc}")

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        return RequirementsRead(
            kind=KIND_PARSE_ERROR,
            path=display,
            diagnostic=f"Invalid YAML in {display}: {_describe_yaml_error(exc)}",
        )

    return _flags_from_document(document, key, display)


def read_requirements(
    path: Union[str, Path],
    key: str = DEFAULT_REQUIREMENTS_KEY,
) -> List[str]:
    """Return the deduplicated, order-preserving flags declared at ``path``.

    Raises:
        ConfigurationError: If the artifact exists but cannot be parsed.
    """
    result = parse_requirements(path, key)
    if result.kind == KIND_ABSENT:
        return []
    if result.kind == KIND_PARSE_ERROR:
        raise parse_failure(result, key)
    return list(result.flags)


def parse_failure(result: RequirementsRead, key: str = DEFAULT_REQUIREMENTS_KEY) -> ConfigurationError:
    """ConfigurationError describing a ``parse_error`` read."""
    return ConfigurationError(
        result.diagnostic or f"Cannot parse {result.path}",
        hint=f"Fix the syntax of {result.path}; it must be a YAML mapping with a '{key}' list of flag names.",
        path=result.path,
    )
