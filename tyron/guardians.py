"""
Tyron Guardian Registry

Guardian set management and recovery threshold policy.

Guardians are stored by ``GuardianId`` (a one-way digest of the identity).
Every mutation is a batch that either applies completely or not at all, and
the threshold is recomputed eagerly once per batch:

    threshold(count) = max(count // 2 + 1, min_threshold)      min_threshold = 3

With fewer than ``min_threshold`` guardians the threshold exceeds the number
of possible voters; recovery is then disabled until more guardians are added.

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

from tyron.hardening import (
    DuplicateGuardian,
    InvariantChecker,
    InvariantViolation,
    NullGuardian,
    SelfGuardian,
    UnregisteredGuardian,
)
from tyron.identity import GuardianId, Identity
from tyron.observability import Component, get_logger
from tyron.state import AccountState

DEFAULT_MIN_THRESHOLD = 3

logger = get_logger("guardians", Component.REGISTRY)


def threshold_for(count: int, minimum: int = DEFAULT_MIN_THRESHOLD) -> int:
    """Quorum size for ``count`` guardians."""
    InvariantChecker.check_non_negative("guardian_count", count)
    return max(count // 2 + 1, minimum)


# =============================================================================
# DELEGATED IDENTITY RESOLUTION
# =============================================================================

class IdentityResolver(ABC):
    """
    Maps an indirect key (e.g. a token id or registered name) to the
    identity currently behind it.

    Resolvers return ``Identity.NULL`` for keys they do not know; the
    registry then rejects the candidate as a null guardian.
    """

    @abstractmethod
    def resolve(self, key: Any) -> Identity:
        ...

    def resolve_many(self, keys: Iterable[Any]) -> List[Identity]:
        return [self.resolve(k) for k in keys]


class StaticIdentityResolver(IdentityResolver):
    """In-memory resolver backed by a mapping. Thread-safe."""

    def __init__(self, mapping: Optional[Dict[Any, Identity]] = None):
        self._mapping: Dict[Any, Identity] = dict(mapping or {})
        self._lock = threading.Lock()

    def assign(self, key: Any, identity: Identity) -> None:
        with self._lock:
            self._mapping[key] = identity

    def resolve(self, key: Any) -> Identity:
        with self._lock:
            return self._mapping.get(key, Identity.NULL)


# =============================================================================
# REGISTRY
# =============================================================================

class GuardianRegistry:
    """
    Guardian set operations over an ``AccountState``.

    The registry holds no account state of its own; callers pass the state
    record (a working copy inside an account transaction). On failure the
    working copy may be partially modified and must be discarded, which
    ``SSIAccount`` guarantees.
    """

    def __init__(
        self,
        resolver: Optional[IdentityResolver] = None,
        min_threshold: int = DEFAULT_MIN_THRESHOLD,
    ):
        self.resolver = resolver or StaticIdentityResolver()
        self.min_threshold = min_threshold

    def add(
        self,
        state: AccountState,
        identities: Sequence[Identity],
        delegated_keys: Sequence[Any] = (),
    ) -> List[GuardianId]:
        """
        Register direct identities, then identities resolved from
        ``delegated_keys``, in order.

        Raises DuplicateGuardian, NullGuardian or SelfGuardian for the first
        offending candidate.
        """
        candidates = list(identities) + self.resolver.resolve_many(delegated_keys)
        added: List[GuardianId] = []

        for identity in candidates:
            guardian_id = GuardianId.of(identity)
            if state.guardians.get(guardian_id):
                raise DuplicateGuardian(guardian_id.hex)
            if identity.is_null:
                raise NullGuardian(identity.hex)
            if identity == state.owner:
                raise SelfGuardian(identity.hex)

            state.guardians[guardian_id] = True
            state.guardian_count += 1
            added.append(guardian_id)

        self._update_threshold(state)
        logger.debug(
            "Guardians added",
            operation="add",
            added=len(added),
            guardian_count=state.guardian_count,
            threshold=state.threshold,
        )
        return added

    def remove(self, state: AccountState, guardian_ids: Sequence[GuardianId]) -> List[GuardianId]:
        """Deregister guardians by id. Raises UnregisteredGuardian for an absent id."""
        removed: List[GuardianId] = []
        for guardian_id in guardian_ids:
            if not state.guardians.get(guardian_id):
                raise UnregisteredGuardian(guardian_id.hex)
            del state.guardians[guardian_id]
            state.guardian_count -= 1
            removed.append(guardian_id)

        self._update_threshold(state)
        logger.debug(
            "Guardians removed",
            operation="remove",
            removed=len(removed),
            guardian_count=state.guardian_count,
            threshold=state.threshold,
        )
        return removed

    @staticmethod
    def contains(state: AccountState, guardian_id: GuardianId) -> bool:
        return bool(state.guardians.get(guardian_id))

    def check_state(self, state: AccountState) -> None:
        """Verify a state record built outside the registry, e.g. loaded from disk."""
        InvariantChecker.check_count_matches("guardian_count", state.guardian_count, len(state.guardians))
        expected = threshold_for(state.guardian_count, self.min_threshold)
        if state.threshold != expected:
            raise InvariantViolation(
                f"threshold {state.threshold} does not match {state.guardian_count} guardians "
                f"(expected {expected})"
            )
        if state.guardians.get(GuardianId.of(state.owner)):
            raise InvariantViolation("owner is a registered guardian")

    def _update_threshold(self, state: AccountState) -> None:
        InvariantChecker.check_count_matches("guardian_count", state.guardian_count, len(state.guardians))
        state.threshold = threshold_for(state.guardian_count, self.min_threshold)
        if state.guardian_count < state.threshold:
            logger.warning(
                "Recovery unreachable: fewer guardians than threshold",
                operation="threshold",
                guardian_count=state.guardian_count,
                threshold=state.threshold,
            )
