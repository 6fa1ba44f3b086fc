"""
Operation authorization tests.

Run with: pytest tests/test_authorization.py -v
"""

import pytest

from tyron.account import SSIAccount
from tyron.authorization import AuthResult, OperationAuthorizer
from tyron.authenticators import SignatureValidator
from tyron.domain import authorization_envelope
from tyron.hardening import NotExecutionEnvironment
from tyron.observability import AuditOutcome

from conftest import make_key, sign_votes

OP_DIGEST = bytes.fromhex("c0ffee" * 10 + "c0") + b"\x01"


def owner_signature(key, digest=OP_DIGEST):
    return key.sign(authorization_envelope(digest))


class TestAuthResult:
    """Validation data values."""

    def test_numeric_values(self):
        assert int(AuthResult.ACCEPTED) == 0
        assert int(AuthResult.REJECTED) == 1

    def test_accepted_flag(self):
        assert AuthResult.ACCEPTED.accepted
        assert not AuthResult.REJECTED.accepted


class TestOperationAuthorizer:
    """Owner signatures over the enveloped digest."""

    def test_owner_signature_accepted(self, account, environment, owner):
        assert account.authorize(environment.identity, OP_DIGEST, owner_signature(owner)) is AuthResult.ACCEPTED

    def test_signature_over_raw_digest_rejected(self, account, environment, owner):
        result = account.authorize(environment.identity, OP_DIGEST, owner.sign(OP_DIGEST))
        assert result is AuthResult.REJECTED

    def test_other_signer_rejected(self, account, environment, guardians):
        result = account.authorize(environment.identity, OP_DIGEST, owner_signature(guardians[0]))
        assert result is AuthResult.REJECTED

    @pytest.mark.parametrize("digest", [b"", b"\x01" * 31, "not-hex", None])
    def test_malformed_digest_rejected(self, account, environment, owner, digest):
        assert account.authorize(environment.identity, digest, owner_signature(owner)) is AuthResult.REJECTED

    @pytest.mark.parametrize("signature", [b"", b"\x00" * 64, "zz"])
    def test_malformed_signature_rejected(self, account, environment, signature):
        assert account.authorize(environment.identity, OP_DIGEST, signature) is AuthResult.REJECTED

    def test_rejection_does_not_change_state(self, account, environment):
        version = account.version
        account.authorize(environment.identity, OP_DIGEST, b"\x00" * 64)
        assert account.version == version

    def test_standalone_authorizer(self, account, owner):
        authorizer = OperationAuthorizer(SignatureValidator())
        assert authorizer.authorize(account.snapshot(), OP_DIGEST, owner_signature(owner)) is AuthResult.ACCEPTED


class TestExecutionEnvironmentGate:
    """Only the environment may ask for authorization."""

    def test_owner_is_not_environment(self, account, owner):
        with pytest.raises(NotExecutionEnvironment):
            account.authorize(owner.identity, OP_DIGEST, owner_signature(owner))

    def test_stranger_is_denied_and_audited(self, account, owner, audit_log):
        with pytest.raises(NotExecutionEnvironment):
            account.authorize(make_key(99).identity, OP_DIGEST, owner_signature(owner))
        denied = audit_log.events(action="authorize", outcome=AuditOutcome.DENIED)
        assert len(denied) == 1

    def test_account_without_environment(self, owner, guardians):
        account = SSIAccount.create(owner.identity, guardians=[g.identity for g in guardians[:3]])
        with pytest.raises(NotExecutionEnvironment):
            account.authorize(owner.identity, OP_DIGEST, owner_signature(owner))


class TestAuthorizationFollowsOwner:
    """Authorization tracks ownership changes."""

    def test_after_recovery(self, account, environment, owner, guardians, new_owner):
        signers, signatures = sign_votes(account, new_owner.identity, guardians[:3])
        account.recover(new_owner.identity, signers, signatures)

        assert account.authorize(environment.identity, OP_DIGEST, owner_signature(owner)) is AuthResult.REJECTED
        assert account.authorize(environment.identity, OP_DIGEST, owner_signature(new_owner)) is AuthResult.ACCEPTED

    def test_after_two_step_transfer(self, account, environment, owner, new_owner):
        account.propose_transfer(owner.identity, new_owner.identity)
        assert account.authorize(environment.identity, OP_DIGEST, owner_signature(owner)) is AuthResult.ACCEPTED

        account.accept_ownership(new_owner.identity)
        assert account.authorize(environment.identity, OP_DIGEST, owner_signature(new_owner)) is AuthResult.ACCEPTED
