"""
Tyron Ownership Controller

Owner / pending-owner state machine.

    ┌────────┐  propose(new_owner)   ┌──────────────────┐
    │ STABLE │ ────────────────────► │ PENDING_TRANSFER │ ◄─┐ propose (replaces)
    └────────┘ ◄──────────────────── └──────────────────┘ ──┘
        ▲  │        accept()                 │
        │  └─ force_transfer() ◄─────────────┘ force_transfer()  (recovery)
        └─────┘

``accept`` is the only way a proposal takes effect; ``force_transfer`` is the
single-step transfer used once guardians reached quorum.

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, Optional, Set

from tyron.hardening import (
    InvalidOwner,
    InvariantChecker,
    InvariantViolation,
    NotPendingOwner,
    ProposalExpired,
)
from tyron.identity import GuardianId, Identity
from tyron.observability import Component, get_logger
from tyron.state import AccountState

logger = get_logger("ownership", Component.OWNERSHIP)


class OwnershipStatus(Enum):
    STABLE = "stable"
    PENDING_TRANSFER = "pending_transfer"


VALID_TRANSITIONS: Dict[Enum, Set[Enum]] = {
    OwnershipStatus.STABLE: {OwnershipStatus.STABLE, OwnershipStatus.PENDING_TRANSFER},
    OwnershipStatus.PENDING_TRANSFER: {OwnershipStatus.STABLE, OwnershipStatus.PENDING_TRANSFER},
}


class OwnershipController:
    """Ownership transitions over an ``AccountState``."""

    def __init__(
        self,
        pending_ttl_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.pending_ttl_seconds = pending_ttl_seconds
        self.clock = clock

    @staticmethod
    def status(state: AccountState) -> OwnershipStatus:
        if state.pending_owner is None:
            return OwnershipStatus.STABLE
        return OwnershipStatus.PENDING_TRANSFER

    @staticmethod
    def check_new_owner(state: AccountState, new_owner: Identity) -> None:
        if new_owner.is_null:
            raise InvalidOwner("New owner cannot be null")
        if new_owner == state.owner:
            raise InvalidOwner("New owner is already the owner")
        if new_owner == state.account:
            raise InvalidOwner("Account cannot own itself")
        if state.guardians.get(GuardianId.of(new_owner)):
            raise InvalidOwner("New owner is a registered guardian")

    def propose(self, state: AccountState, new_owner: Identity) -> Optional[Identity]:
        """
        Start (or replace) a two-step transfer to ``new_owner``.

        Returns the superseded pending owner, if any.
        """
        self.check_new_owner(state, new_owner)
        self._transition(state, OwnershipStatus.PENDING_TRANSFER)

        superseded = state.pending_owner
        state.pending_owner = new_owner
        state.pending_since = int(self.clock())
        logger.info(
            "Ownership transfer proposed",
            operation="propose",
            new_owner=new_owner.hex,
            superseded=superseded.hex if superseded else None,
        )
        return superseded

    def accept(self, state: AccountState, caller: Identity) -> Identity:
        """Complete a pending transfer; only the proposed owner may call. Returns the previous owner."""
        if state.pending_owner is None or caller != state.pending_owner:
            raise NotPendingOwner(f"Caller {caller.hex} is not the pending owner")
        if self.is_expired(state):
            raise ProposalExpired(
                f"Transfer proposal expired after {self.pending_ttl_seconds}s"
            )
        if state.guardians.get(GuardianId.of(state.pending_owner)):
            raise InvalidOwner("Pending owner has since been registered as a guardian")

        self._transition(state, OwnershipStatus.STABLE)
        previous = state.owner
        state.owner = state.pending_owner
        state.pending_owner = None
        state.pending_since = None
        logger.info("Ownership transfer accepted", operation="accept", new_owner=state.owner.hex)
        return previous

    def force_transfer(self, state: AccountState, new_owner: Identity) -> Identity:
        """Immediate single-step transfer used by guardian recovery. Returns the previous owner."""
        self.check_new_owner(state, new_owner)
        self._transition(state, OwnershipStatus.STABLE)

        previous = state.owner
        state.owner = new_owner
        state.pending_owner = None
        state.pending_since = None
        logger.info("Ownership force-transferred", operation="force_transfer", new_owner=new_owner.hex)
        return previous

    def check_state(self, state: AccountState) -> None:
        """Verify owner and pending-owner fields of a state record built elsewhere."""
        if state.owner.is_null:
            raise InvariantViolation("owner cannot be null")
        if state.owner == state.account:
            raise InvariantViolation("account cannot own itself")
        if state.pending_owner is None:
            if state.pending_since is not None:
                raise InvariantViolation("pending_since set without a pending owner")
            return
        # A pending owner may have become a guardian since the proposal; accept rejects that.
        if state.pending_owner.is_null or state.pending_owner in (state.owner, state.account):
            raise InvariantViolation("pending_owner must differ from null, the owner and the account")

    def is_expired(self, state: AccountState) -> bool:
        if self.pending_ttl_seconds <= 0 or state.pending_since is None:
            return False
        return self.clock() - state.pending_since > self.pending_ttl_seconds

    def _transition(self, state: AccountState, target: OwnershipStatus) -> None:
        InvariantChecker.check_state_transition(self.status(state), target, VALID_TRANSITIONS)
