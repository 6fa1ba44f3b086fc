"""
Tyron Signature Validation

Polymorphic identity authentication. An identity is either a plain key
(Ed25519 public key) or a delegated principal that answers for its own
signatures. Callers never need to know which; ``SignatureValidator`` resolves
the identity to one of two authenticator variants and dispatches:

    KeyAuthenticator        verify(signature, digest) under the identity's key
    DelegatedAuthenticator  verifier.is_valid_signature(digest, signature)
                            == MAGIC_VALUE

Malformed inputs never raise out of ``verify``; they are invalid signatures.

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from tyron.hardening import CryptoUtils, Validators
from tyron.identity import Identity
from tyron.observability import Component, get_logger

MAGIC_VALUE = bytes.fromhex("1626ba7e")
INVALID_VALUE = bytes.fromhex("ffffffff")

logger = get_logger("signatures", Component.SIGNATURE)


class DelegatedVerifier(ABC):
    """Verification capability of a delegated identity."""

    @abstractmethod
    def is_valid_signature(self, digest: bytes, signature: bytes) -> bytes:
        """Return ``MAGIC_VALUE`` iff ``signature`` is valid for ``digest``."""


@dataclass(frozen=True)
class KeyAuthenticator:
    """Authenticates a key identity by direct Ed25519 verification."""
    identity: Identity

    def verify(self, digest: bytes, signature: bytes) -> bool:
        if self.identity.is_null:
            return False
        try:
            public_key = Ed25519PublicKey.from_public_bytes(self.identity.raw)
            public_key.verify(signature, digest)
        except (InvalidSignature, ValueError):
            return False
        return True


@dataclass(frozen=True)
class DelegatedAuthenticator:
    """Authenticates a delegated identity through its own verifier."""
    identity: Identity
    verifier: DelegatedVerifier

    def verify(self, digest: bytes, signature: bytes) -> bool:
        try:
            result = self.verifier.is_valid_signature(digest, signature)
        except Exception as e:
            # An external verifier that fails is a rejection, not an error.
            logger.warning(
                "Delegated verifier raised; treating signature as invalid",
                operation="verify",
                identity=self.identity.hex,
                error=repr(e),
            )
            return False
        if not isinstance(result, (bytes, bytearray)) or len(result) != len(MAGIC_VALUE):
            return False
        return CryptoUtils.secure_compare(bytes(result), MAGIC_VALUE)


Authenticator = Union[KeyAuthenticator, DelegatedAuthenticator]


class AuthenticatorDirectory:
    """
    Maps identities to their delegated verification capability.

    Identities without a registration are key identities. Thread-safe.
    """

    def __init__(self):
        self._delegates: Dict[Identity, DelegatedVerifier] = {}
        self._lock = threading.Lock()

    def register(self, identity: Identity, verifier: DelegatedVerifier) -> None:
        if identity.is_null:
            raise ValueError("Cannot register the null identity")
        with self._lock:
            self._delegates[identity] = verifier

    def unregister(self, identity: Identity) -> bool:
        with self._lock:
            return self._delegates.pop(identity, None) is not None

    def is_delegated(self, identity: Identity) -> bool:
        with self._lock:
            return identity in self._delegates

    def resolve(self, identity: Identity) -> Authenticator:
        with self._lock:
            verifier = self._delegates.get(identity)
        if verifier is None:
            return KeyAuthenticator(identity)
        return DelegatedAuthenticator(identity, verifier)


class SignatureValidator:
    """Verifies a signature over a digest for any identity."""

    def __init__(self, directory: Optional[AuthenticatorDirectory] = None):
        self.directory = directory or AuthenticatorDirectory()

    def verify(self, identity: Identity, digest: Any, signature: Any) -> bool:
        digest_result = Validators.validate_digest(digest)
        if not digest_result.is_valid:
            return False
        # Delegated verifiers define their own signature encoding.
        sig_result = Validators.validate_bytes(signature, "signature", max_length=65536)
        if not sig_result.is_valid:
            return False

        authenticator = self.directory.resolve(identity)
        if isinstance(authenticator, KeyAuthenticator):
            if not Validators.validate_signature(sig_result.sanitized_value).is_valid:
                return False
            return authenticator.verify(digest_result.sanitized_value, sig_result.sanitized_value)
        elif isinstance(authenticator, DelegatedAuthenticator):
            return authenticator.verify(digest_result.sanitized_value, sig_result.sanitized_value)
        raise TypeError(f"Unknown authenticator: {type(authenticator).__name__}")
