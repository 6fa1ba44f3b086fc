"""
Tyron Recovery Coordinator

Guardian-quorum account recovery.

A recovery request names a new owner and carries parallel lists of guardian
identities and their signatures over the account's ``NewSigner{newOwner}``
digest. The request is evaluated in one pass:

    1. lists must have equal length              ArrayLengthMismatch
    2. every listed identity must be a guardian  UnregisteredGuardian (aborts)
    3. each valid signature is a vote
    4. votes >= threshold                        RecoveryFailed otherwise
    5. ownership moves to the new owner immediately

By default a guardian counts at most once per request even when listed
repeatedly. ``count_duplicate_votes=True`` counts every listed valid
signature.

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Set

from tyron.authenticators import SignatureValidator
from tyron.domain import DomainSeparator
from tyron.guardians import GuardianRegistry
from tyron.hardening import ArrayLengthMismatch, RecoveryFailed, UnregisteredGuardian
from tyron.identity import GuardianId, Identity
from tyron.observability import Component, get_logger
from tyron.ownership import OwnershipController
from tyron.state import AccountState

logger = get_logger("recovery", Component.RECOVERY)


@dataclass(frozen=True)
class RecoveryRequest:
    """Ephemeral recovery request; never persisted."""
    new_owner: Identity
    guardians: Sequence[Identity]
    signatures: Sequence[bytes]


@dataclass(frozen=True)
class RecoveryOutcome:
    previous_owner: Identity
    new_owner: Identity
    votes: int
    threshold: int


class RecoveryCoordinator:
    """Validates guardian votes and drives the recovery ownership transfer."""

    def __init__(
        self,
        registry: GuardianRegistry,
        validator: SignatureValidator,
        ownership: OwnershipController,
        count_duplicate_votes: bool = False,
    ):
        self.registry = registry
        self.validator = validator
        self.ownership = ownership
        self.count_duplicate_votes = count_duplicate_votes

    def count_votes(
        self,
        state: AccountState,
        digest: bytes,
        guardians: Sequence[Identity],
        signatures: Sequence[bytes],
    ) -> int:
        """Number of valid guardian votes for ``digest``."""
        if len(guardians) != len(signatures):
            raise ArrayLengthMismatch(len(guardians), len(signatures))

        votes = 0
        voted: Set[GuardianId] = set()
        for guardian, signature in zip(guardians, signatures):
            guardian_id = GuardianId.of(guardian)
            if not self.registry.contains(state, guardian_id):
                raise UnregisteredGuardian(guardian_id.hex)
            if not self.count_duplicate_votes and guardian_id in voted:
                continue
            if self.validator.verify(guardian, digest, signature):
                votes += 1
                voted.add(guardian_id)
        return votes

    def recover(
        self,
        state: AccountState,
        domain: DomainSeparator,
        request: RecoveryRequest,
    ) -> RecoveryOutcome:
        if len(request.guardians) != len(request.signatures):
            raise ArrayLengthMismatch(len(request.guardians), len(request.signatures))

        digest = domain.new_signer_digest(request.new_owner)
        votes = self.count_votes(state, digest, request.guardians, request.signatures)

        if votes < state.threshold:
            logger.warning(
                "Recovery quorum not reached",
                operation="recover",
                votes=votes,
                threshold=state.threshold,
            )
            raise RecoveryFailed(votes, state.threshold)

        previous = self.ownership.force_transfer(state, request.new_owner)
        logger.info(
            "Account recovered",
            operation="recover",
            new_owner=request.new_owner.hex,
            votes=votes,
            threshold=state.threshold,
        )
        return RecoveryOutcome(
            previous_owner=previous,
            new_owner=request.new_owner,
            votes=votes,
            threshold=state.threshold,
        )

