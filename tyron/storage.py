"""tyron.storage

Account state files.

A state file is the canonical JSON of ``AccountState.to_dict()``. Writes go
to a temporary file in the target directory which then replaces the target,
so a reader sees either the old or the new state. Reads are validated against
the packaged JSON Schema before the state is rebuilt.
"""

from __future__ import annotations

import os
import pathlib
import tempfile
from typing import Any, List, Optional, Union

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from tyron.core import SCHEMAS_DIR, jcs_canonicalize, load_json
from tyron.hardening import AccountError, InvariantViolation, ValidationError
from tyron.observability import Component, get_logger
from tyron.state import AccountState

STATE_SCHEMA = SCHEMAS_DIR / "account.state.schema.json"

logger = get_logger("storage", Component.STORAGE)

_SCHEMA_REGISTRY: Optional[Registry] = None


class StateFileError(AccountError):
    """A state file is missing, unreadable or violates the schema."""

    def __init__(self, path: Union[str, pathlib.Path], errors: List[str]):
        self.path = pathlib.Path(path)
        self.errors = errors
        super().__init__(f"{self.path}: " + "; ".join(errors))


def _schema_registry() -> Registry:
    """In-memory registry of the packaged schemas keyed by ``$id``."""
    global _SCHEMA_REGISTRY
    if _SCHEMA_REGISTRY is not None:
        return _SCHEMA_REGISTRY

    reg = Registry()
    for sp in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        sj = load_json(sp)
        sid = sj.get("$id")
        if isinstance(sid, str) and sid:
            reg = reg.with_resource(sid, Resource.from_contents(sj, default_specification=DRAFT202012))
    _SCHEMA_REGISTRY = reg
    return reg


def schema_validator(schema_path: pathlib.Path = STATE_SCHEMA) -> Draft202012Validator:
    return Draft202012Validator(load_json(schema_path), registry=_schema_registry())


def validate_state_dict(obj: Any) -> List[str]:
    """Schema violations of a serialized state, sorted; empty when valid."""
    validator = schema_validator()
    return [f"{list(e.absolute_path)}: {e.message}" for e in sorted(validator.iter_errors(obj), key=str)]


def save_state(path: Union[str, pathlib.Path], state: AccountState) -> pathlib.Path:
    path = pathlib.Path(path)
    data = state.to_dict()
    errors = validate_state_dict(data)
    if errors:
        raise StateFileError(path, errors)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(jcs_canonicalize(data) + b"\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

    logger.debug("State saved", operation="save_state", path=str(path), version=state.version)
    return path


def load_state(path: Union[str, pathlib.Path]) -> AccountState:
    path = pathlib.Path(path)
    if not path.exists():
        raise StateFileError(path, ["file not found"])
    try:
        data = load_json(path)
    except ValueError as e:
        raise StateFileError(path, [f"invalid JSON: {e}"]) from e

    errors = validate_state_dict(data)
    if errors:
        raise StateFileError(path, errors)

    try:
        state = AccountState.from_dict(data)
    except (ValidationError, InvariantViolation) as e:
        raise StateFileError(path, [str(e)]) from e
    if state.guardian_count != len(state.guardians):
        raise StateFileError(path, [
            f"guardian_count {state.guardian_count} does not match {len(state.guardians)} guardians"
        ])

    logger.debug("State loaded", operation="load_state", path=str(path), version=state.version)
    return state
