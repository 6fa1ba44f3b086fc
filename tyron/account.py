"""
Tyron SSI Account

Self-sovereign identity account: an owner-controlled identity that a quorum of
guardians can hand to a new owner when the owner key is lost.

Components:
    ┌──────────────────────────────────────────────────────────────────┐
    │                            SSIAccount                            │
    │   lock + working-copy transactions, gates, audit, events         │
    └──────┬───────────────┬────────────────┬───────────────┬──────────┘
           │               │                │               │
    ┌──────▼──────┐ ┌──────▼───────┐ ┌──────▼───────┐ ┌─────▼────────┐
    │  Guardian   │ │  Ownership   │ │   Recovery   │ │  Operation   │
    │  Registry   │ │  Controller  │ │  Coordinator │ │  Authorizer  │
    └─────────────┘ └──────────────┘ └──────┬───────┘ └─────┬────────┘
                                            │               │
                                     ┌──────▼───────────────▼──┐
                                     │   SignatureValidator    │
                                     └─────────────────────────┘

Every mutating operation runs against a private copy of the committed
``AccountState``. The copy replaces the committed state (with ``version + 1``)
only when the operation completes; any exception discards it. Events are
published after the commit, outside the account lock.

Usage:
    owner = KeyPair.generate()
    account = SSIAccount.create(
        owner.identity,
        guardians=[g.identity for g in guardian_keys],
        environment=relay_identity,
    )
    account.propose_transfer(owner.identity, new_owner)

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from tyron.authenticators import (
    INVALID_VALUE,
    MAGIC_VALUE,
    AuthenticatorDirectory,
    DelegatedVerifier,
    SignatureValidator,
)
from tyron.authorization import AuthResult, OperationAuthorizer
from tyron.config import AccountConfig, get_config
from tyron.domain import DomainSeparator
from tyron.events import (
    AccountCreated,
    AccountRecovered,
    Event,
    EventBus,
    GuardiansAdded,
    GuardiansRemoved,
    OwnershipTransferred,
    OwnershipTransferStarted,
    Upgraded,
)
from tyron.guardians import GuardianRegistry, IdentityResolver
from tyron.hardening import (
    AccountError,
    AuthorizationError,
    InvalidOwner,
    InvariantChecker,
    MalformedInput,
    NotExecutionEnvironment,
    NotOwner,
    ReentrantCall,
)
from tyron.identity import GuardianId, Identity
from tyron.observability import (
    AuditLog,
    AuditOutcome,
    Component,
    correlation_scope,
    get_correlation_id,
    get_logger,
    timed_operation,
)
from tyron.ownership import OwnershipController, OwnershipStatus
from tyron.recovery import RecoveryCoordinator, RecoveryOutcome, RecoveryRequest
from tyron.state import AccountState

logger = get_logger("account", Component.ACCOUNT)

ACCOUNT_DERIVATION_LABEL = "tyron.account.v1"


class SSIAccount(DelegatedVerifier):
    """
    A guardian-recoverable account.

    Accounts are themselves delegated verifiers: registering one in an
    ``AuthenticatorDirectory`` lets it act as owner or guardian of another
    account, answering with its current owner's signatures.
    """

    def __init__(
        self,
        state: AccountState,
        config: Optional[AccountConfig] = None,
        directory: Optional[AuthenticatorDirectory] = None,
        resolver: Optional[IdentityResolver] = None,
        event_bus: Optional[EventBus] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or get_config()
        self.directory = directory or AuthenticatorDirectory()
        self.event_bus = event_bus or EventBus()
        self.audit_log = audit_log or AuditLog()

        self.validator = SignatureValidator(self.directory)
        self.registry = GuardianRegistry(
            resolver=resolver,
            min_threshold=self.config.guardians.min_threshold.get(),
        )
        self.ownership = OwnershipController(
            pending_ttl_seconds=self.config.ownership.pending_ttl_seconds.get(),
            clock=clock,
        )
        self.recovery = RecoveryCoordinator(
            self.registry,
            self.validator,
            self.ownership,
            count_duplicate_votes=self.config.recovery.count_duplicate_votes.get(),
        )
        self.authorizer = OperationAuthorizer(self.validator)
        self.domain = DomainSeparator(
            name=self.config.domain.name.get(),
            version=self.config.domain.version.get(),
            chain_id=self.config.domain.chain_id.get(),
            verifying_account=state.account,
        )

        self._state = state
        self._lock = threading.RLock()
        self._local = threading.local()

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        owner: Any,
        guardians: Sequence[Any] = (),
        delegated_keys: Sequence[Any] = (),
        environment: Any = None,
        account: Any = None,
        config: Optional[AccountConfig] = None,
        directory: Optional[AuthenticatorDirectory] = None,
        resolver: Optional[IdentityResolver] = None,
        event_bus: Optional[EventBus] = None,
        audit_log: Optional[AuditLog] = None,
        clock: Callable[[], float] = time.time,
    ) -> "SSIAccount":
        """
        Create an account owned by ``owner`` with an initial guardian set.

        ``account`` defaults to an identity derived from the creation
        parameters. Initial guardians are validated exactly like a later
        ``add_guardians`` batch.
        """
        owner_id = Identity.parse(owner)
        if owner_id.is_null:
            raise InvalidOwner("Owner cannot be null")
        environment_id = Identity.parse(environment) if environment is not None else Identity.NULL
        direct = [Identity.parse(g) for g in guardians]

        if account is None:
            account_id = Identity.derive(ACCOUNT_DERIVATION_LABEL, {
                "owner": owner_id.hex,
                "environment": environment_id.hex,
                "guardians": [g.hex for g in direct],
                "delegated_keys": [str(k) for k in delegated_keys],
            })
        else:
            account_id = Identity.parse(account)
        if account_id == owner_id:
            raise InvalidOwner("Account cannot own itself")

        state = AccountState(account=account_id, owner=owner_id, environment=environment_id)
        instance = cls(
            state,
            config=config,
            directory=directory,
            resolver=resolver,
            event_bus=event_bus,
            audit_log=audit_log,
            clock=clock,
        )

        with correlation_scope():
            try:
                instance.registry.add(state, direct, delegated_keys)
            except AccountError as e:
                instance.audit_log.record(
                    owner_id.hex, account_id.hex, "create", AuditOutcome.FAILURE, error=type(e).__name__,
                )
                raise

            instance.audit_log.record(
                owner_id.hex, account_id.hex, "create", AuditOutcome.SUCCESS,
                guardian_count=state.guardian_count, threshold=state.threshold,
            )
            logger.info(
                "Account created",
                operation="create",
                account=account_id.hex,
                guardian_count=state.guardian_count,
                threshold=state.threshold,
            )
            instance.event_bus.publish(instance._event(
                AccountCreated,
                owner=owner_id.hex,
                guardian_count=state.guardian_count,
                threshold=state.threshold,
            ))
        return instance

    @classmethod
    def from_state(cls, state: AccountState, **kwargs: Any) -> "SSIAccount":
        """
        Rehydrate an account from a persisted state record.

        The record is checked against this account's configuration: a
        threshold that does not follow from the guardian count, or an owner
        or pending owner that could not have been reached through the
        account's own operations, raises InvariantViolation.
        """
        instance = cls(state.copy(), **kwargs)
        instance.registry.check_state(instance._state)
        instance.ownership.check_state(instance._state)
        return instance

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def account(self) -> Identity:
        return self._state.account

    @property
    def owner(self) -> Identity:
        with self._lock:
            return self._state.owner

    @property
    def pending_owner(self) -> Optional[Identity]:
        with self._lock:
            return self._state.pending_owner

    @property
    def environment(self) -> Identity:
        return self._state.environment

    @property
    def version(self) -> int:
        with self._lock:
            return self._state.version

    @property
    def implementation(self) -> str:
        with self._lock:
            return self._state.implementation

    @property
    def ownership_status(self) -> OwnershipStatus:
        with self._lock:
            return self.ownership.status(self._state)

    @property
    def recovery_enabled(self) -> bool:
        """False while there are fewer guardians than the threshold."""
        with self._lock:
            return self._state.guardian_count >= self._state.threshold

    def snapshot(self) -> AccountState:
        """Copy of the committed state."""
        with self._lock:
            return self._state.copy()

    def get_guardian_params(self) -> Tuple[int, int]:
        """``(guardian_count, threshold)``."""
        with self._lock:
            return self._state.guardian_count, self._state.threshold

    def is_guardian(self, guardian_id: Any) -> bool:
        gid = guardian_id if isinstance(guardian_id, GuardianId) else GuardianId.from_hex(guardian_id)
        with self._lock:
            return self.registry.contains(self._state, gid)

    def is_guardian_identity(self, identity: Any) -> bool:
        return self.is_guardian(GuardianId.of(Identity.parse(identity)))

    def recovery_digest(self, new_owner: Any) -> bytes:
        """The digest guardians sign to vote for ``new_owner``."""
        return self.domain.new_signer_digest(Identity.parse(new_owner))

    # -------------------------------------------------------------------------
    # Signatures
    # -------------------------------------------------------------------------

    def check_signature(self, digest: Any, signature: Any) -> bool:
        """Whether ``signature`` over ``digest`` (used as given) is the owner's."""
        with self._lock:
            owner = self._state.owner
        return self.validator.verify(owner, digest, signature)

    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        return MAGIC_VALUE if self.check_signature(digest, signature) else INVALID_VALUE

    def authorize(self, caller: Any, digest: Any, signature: Any) -> AuthResult:
        """
        Validate an operation submitted through the execution environment.

        Only the environment may ask. A bad signature is ``REJECTED``, not an
        error.
        """
        caller_id = Identity.parse(caller)
        with self._lock:
            if self._state.environment.is_null or caller_id != self._state.environment:
                self._audit(caller_id, "authorize", AuditOutcome.DENIED, error="NotExecutionEnvironment")
                raise NotExecutionEnvironment(f"Caller {caller_id.hex} is not the execution environment")
            state = self._state

        result = self.authorizer.authorize(state, digest, signature)
        outcome = AuditOutcome.SUCCESS if result.accepted else AuditOutcome.FAILURE
        self._audit(caller_id, "authorize", outcome, result=result.name)
        return result

    # -------------------------------------------------------------------------
    # Guardian management
    # -------------------------------------------------------------------------

    @timed_operation(logger, "add_guardians")
    def add_guardians(
        self,
        caller: Any,
        guardians: Sequence[Any] = (),
        delegated_keys: Sequence[Any] = (),
    ) -> List[GuardianId]:
        identities = [Identity.parse(g) for g in guardians]
        with self._transaction("add_guardians", caller) as (state, events):
            self._require_owner_or_environment(state, caller)
            added = self.registry.add(state, identities, delegated_keys)
            events.append(self._event(
                GuardiansAdded,
                guardian_ids=[g.hex for g in added],
                guardian_count=state.guardian_count,
                threshold=state.threshold,
            ))
        return added

    @timed_operation(logger, "remove_guardians")
    def remove_guardians(self, caller: Any, guardian_ids: Sequence[Any]) -> List[GuardianId]:
        ids = [g if isinstance(g, GuardianId) else GuardianId.from_hex(g) for g in guardian_ids]
        with self._transaction("remove_guardians", caller) as (state, events):
            self._require_owner_or_environment(state, caller)
            removed = self.registry.remove(state, ids)
            events.append(self._event(
                GuardiansRemoved,
                guardian_ids=[g.hex for g in removed],
                guardian_count=state.guardian_count,
                threshold=state.threshold,
            ))
        return removed

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    def propose_transfer(self, caller: Any, new_owner: Any) -> None:
        """First step of a voluntary transfer. Replaces any earlier proposal."""
        target = Identity.parse(new_owner)
        with self._transaction("propose_transfer", caller) as (state, events):
            self._require_owner_or_environment(state, caller)
            self.ownership.propose(state, target)
            events.append(self._event(
                OwnershipTransferStarted,
                previous_owner=state.owner.hex,
                new_owner=target.hex,
            ))

    def accept_ownership(self, caller: Any) -> None:
        """Second step; only the pending owner may call."""
        caller_id = Identity.parse(caller)
        with self._transaction("accept_ownership", caller_id) as (state, events):
            previous = self.ownership.accept(state, caller_id)
            events.append(self._event(
                OwnershipTransferred,
                previous_owner=previous.hex,
                new_owner=state.owner.hex,
            ))

    @timed_operation(logger, "recover")
    def recover(
        self,
        new_owner: Any,
        guardians: Sequence[Any],
        signatures: Sequence[Any],
    ) -> RecoveryOutcome:
        """
        Transfer ownership to ``new_owner`` on a guardian quorum.

        Anyone may submit; the guardian signatures are the authorization.
        """
        request = RecoveryRequest(
            new_owner=Identity.parse(new_owner),
            guardians=[Identity.parse(g) for g in guardians],
            signatures=list(signatures),
        )
        with self._transaction("recover", "guardians") as (state, events):
            outcome = self.recovery.recover(state, self.domain, request)
            events.append(self._event(
                AccountRecovered,
                new_owner=outcome.new_owner.hex,
                votes=outcome.votes,
                threshold=outcome.threshold,
            ))
            events.append(self._event(
                OwnershipTransferred,
                previous_owner=outcome.previous_owner.hex,
                new_owner=outcome.new_owner.hex,
            ))
        return outcome

    # -------------------------------------------------------------------------
    # Execution surface
    # -------------------------------------------------------------------------

    def execute(self, caller: Any, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``operation`` on behalf of the account and return its result."""
        with self._transaction("execute", caller, mutates=False) as (state, _):
            self._require_owner_or_environment(state, caller)
            return operation(*args, **kwargs)

    def execute_batch(self, caller: Any, operations: Sequence[Callable[[], Any]]) -> List[Any]:
        """Run zero-argument callables in order; the first failure aborts the rest."""
        with self._transaction("execute_batch", caller, mutates=False) as (state, _):
            self._require_owner_or_environment(state, caller)
            return [operation() for operation in operations]

    def upgrade_to(self, caller: Any, implementation: str) -> None:
        if not isinstance(implementation, str) or not implementation.strip():
            raise MalformedInput("implementation", "Implementation label must be a non-empty string", implementation)
        with self._transaction("upgrade_to", caller) as (state, events):
            self._require_owner_or_environment(state, caller)
            state.implementation = implementation
            events.append(self._event(Upgraded, implementation=implementation))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _transaction(
        self,
        action: str,
        actor: Any,
        mutates: bool = True,
    ) -> Iterator[Tuple[AccountState, List[Event]]]:
        """
        Serialize an operation against a working copy of the state.

        Yields ``(working_state, events)``. Events appended by the operation
        are published once the copy has been committed.
        """
        with correlation_scope():
            if getattr(self._local, "active", False):
                self._audit(actor, action, AuditOutcome.DENIED, error="ReentrantCall")
                raise ReentrantCall(f"Re-entrant call to {action} during an account operation")

            events: List[Event] = []
            with self._lock:
                self._local.active = True
                working = self._state.copy()
                try:
                    yield working, events
                except AccountError as e:
                    outcome = AuditOutcome.DENIED if isinstance(e, AuthorizationError) else AuditOutcome.FAILURE
                    self._audit(actor, action, outcome, error=type(e).__name__)
                    logger.warning(
                        f"{action} rejected: {e}",
                        operation=action,
                        error_code=type(e).__name__,
                    )
                    raise
                except Exception as e:
                    self._audit(actor, action, AuditOutcome.FAILURE, error=type(e).__name__)
                    raise
                finally:
                    self._local.active = False

                if mutates:
                    working.version = self._state.version + 1
                    InvariantChecker.check_monotonic_increase("version", self._state.version, working.version)
                    InvariantChecker.check_count_matches(
                        "guardian_count", working.guardian_count, len(working.guardians),
                    )
                    self._state = working
                self._audit(actor, action, AuditOutcome.SUCCESS, version=self._state.version)

            for event in events:
                self.event_bus.publish(event)

    @staticmethod
    def _require_owner_or_environment(state: AccountState, caller: Any) -> None:
        caller_id = Identity.parse(caller)
        if caller_id == state.owner:
            return
        if not state.environment.is_null and caller_id == state.environment:
            return
        raise NotOwner(f"Caller {caller_id.hex} is neither the owner nor the execution environment")

    def _audit(self, actor: Any, action: str, outcome: AuditOutcome, **details: Any) -> None:
        if isinstance(actor, Identity):
            actor_label = actor.hex
        elif isinstance(actor, (bytes, bytearray)):
            actor_label = "0x" + bytes(actor).hex()
        else:
            actor_label = str(actor)
        self.audit_log.record(actor_label, self.account.hex, action, outcome, **details)

    def _event(self, event_cls: Type[Event], **fields: Any) -> Event:
        return event_cls(
            account=self.account.hex,
            correlation_id=get_correlation_id(),
            **fields,
        )

    def __repr__(self) -> str:
        return f"SSIAccount({self.account.short()}, owner={self.owner.short()}, v{self.version})"
