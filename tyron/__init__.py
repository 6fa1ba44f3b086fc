"""
Tyron: Guardian-Recoverable SSI Accounts

Self-sovereign identity accounts controlled by a single owner key, with a
social-recovery fallback: a quorum of guardians can hand the account to a new
owner when the owner key is lost.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                              SSI ACCOUNT                                 │
    │                                                                          │
    │  FACADE                                                                  │
    │    account.py        Transactions, gates, audit trail, events           │
    │                                                                          │
    │  COMPONENTS                                                              │
    │    guardians.py      Guardian registry and threshold policy             │
    │    ownership.py      Two-step transfer state machine                    │
    │    recovery.py       Guardian quorum recovery                           │
    │    authorization.py  Owner-signed operation validation                  │
    │    authenticators.py Key and delegated signature verification           │
    │                                                                          │
    │  FOUNDATION                                                              │
    │    identity.py       Identity, GuardianId, did:key                      │
    │    domain.py         Domain-separated digests                           │
    │    hardening.py      Errors, validators, invariants                     │
    │    keys.py           Ed25519 JWK key material                           │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py         YAML/env configuration                             │
    │    observability.py  Structured logging and audit log                   │
    │    events.py         Event bus                                          │
    │    storage.py        Schema-validated state files                       │
    │    cli.py            tyron command line                                 │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Guardian: A principal trusted to vote for a new owner. Stored only as a
    one-way GuardianId, so the registry does not reveal who the guardians are.

    Threshold: max(count // 2 + 1, 3). Recovery stays disabled until at least
    three guardians are registered.

    Delegated identity: A principal (for instance another account) that
    answers signature checks itself instead of holding a key.

Copyright (c) 2026 Tyron. All rights reserved.
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import Tyron modules on first access."""

    if name in ("SSIAccount",):
        from tyron import account
        return getattr(account, name)

    if name in ("Identity", "GuardianId"):
        from tyron import identity
        return getattr(identity, name)

    if name in ("KeyPair", "load_keypair", "save_keypair"):
        from tyron import keys
        return getattr(keys, name)

    if name in ("AuthResult", "OperationAuthorizer"):
        from tyron import authorization
        return getattr(authorization, name)

    if name in ("DelegatedVerifier", "AuthenticatorDirectory", "SignatureValidator",
                "MAGIC_VALUE"):
        from tyron import authenticators
        return getattr(authenticators, name)

    if name in ("IdentityResolver", "StaticIdentityResolver", "GuardianRegistry",
                "threshold_for"):
        from tyron import guardians
        return getattr(guardians, name)

    if name in ("AccountError", "ValidationError", "AuthorizationError",
                "RecoveryError", "OwnershipError", "SecurityViolation"):
        from tyron import hardening
        return getattr(hardening, name)

    if name in ("EventBus", "EventRecorder"):
        from tyron import events
        return getattr(events, name)

    if name in ("save_state", "load_state", "StateFileError"):
        from tyron import storage
        return getattr(storage, name)

    raise AttributeError(f"module 'tyron' has no attribute '{name}'")


__all__ = [
    "__version__",
    "SSIAccount",
    "Identity",
    "GuardianId",
    "KeyPair",
    "load_keypair",
    "save_keypair",
    "AuthResult",
    "OperationAuthorizer",
    "DelegatedVerifier",
    "AuthenticatorDirectory",
    "SignatureValidator",
    "MAGIC_VALUE",
    "IdentityResolver",
    "StaticIdentityResolver",
    "GuardianRegistry",
    "threshold_for",
    "AccountError",
    "ValidationError",
    "AuthorizationError",
    "RecoveryError",
    "OwnershipError",
    "SecurityViolation",
    "EventBus",
    "EventRecorder",
    "save_state",
    "load_state",
    "StateFileError",
]
