"""
Tyron Operation Authorization

Fast-path check that an externally submitted operation was signed by the
current owner. The relaying execution environment calls this at high volume
and branches on the result, so a bad signature is a ``REJECTED`` value and
never an exception.

The operation digest is wrapped in the fixed authorization envelope before
verification (see ``tyron.domain.authorization_envelope``).

Copyright (c) 2026 Tyron. All rights reserved.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from tyron.authenticators import SignatureValidator
from tyron.domain import authorization_envelope
from tyron.hardening import Validators
from tyron.observability import Component, get_logger
from tyron.state import AccountState

logger = get_logger("authorization", Component.AUTHORIZATION)


class AuthResult(IntEnum):
    """Validation data returned to the execution environment."""
    ACCEPTED = 0
    REJECTED = 1

    @property
    def accepted(self) -> bool:
        return self is AuthResult.ACCEPTED


class OperationAuthorizer:

    def __init__(self, validator: SignatureValidator):
        self.validator = validator

    def authorize(self, state: AccountState, digest: Any, signature: Any) -> AuthResult:
        digest_result = Validators.validate_digest(digest)
        if not digest_result.is_valid:
            logger.debug("Rejected operation with malformed digest", operation="authorize")
            return AuthResult.REJECTED

        wrapped = authorization_envelope(digest_result.sanitized_value)
        if self.validator.verify(state.owner, wrapped, signature):
            return AuthResult.ACCEPTED

        logger.debug("Rejected operation signature", operation="authorize", owner=state.owner.hex)
        return AuthResult.REJECTED
