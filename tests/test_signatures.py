"""
Signature validation tests: key identities, delegated identities and
accounts acting as delegated verifiers.

Run with: pytest tests/test_signatures.py -v
"""

import pytest

from tyron.account import SSIAccount
from tyron.authenticators import (
    INVALID_VALUE,
    MAGIC_VALUE,
    AuthenticatorDirectory,
    DelegatedAuthenticator,
    DelegatedVerifier,
    KeyAuthenticator,
    SignatureValidator,
)
from tyron.identity import Identity

from conftest import make_key

DIGEST = b"\x5a" * 32


class FixedVerifier(DelegatedVerifier):
    def __init__(self, result):
        self.result = result
        self.calls = []

    def is_valid_signature(self, digest, signature):
        self.calls.append((digest, signature))
        return self.result


class ExplodingVerifier(DelegatedVerifier):
    def is_valid_signature(self, digest, signature):
        raise RuntimeError("verifier offline")


# =============================================================================
# KEY IDENTITIES
# =============================================================================

class TestKeySignatures:
    """Ed25519 verification for key identities."""

    def test_valid_signature(self):
        key = make_key(1)
        assert SignatureValidator().verify(key.identity, DIGEST, key.sign(DIGEST))

    def test_signature_by_other_key(self):
        assert not SignatureValidator().verify(make_key(1).identity, DIGEST, make_key(2).sign(DIGEST))

    def test_signature_over_other_digest(self):
        key = make_key(1)
        assert not SignatureValidator().verify(key.identity, DIGEST, key.sign(b"\x00" * 32))

    def test_hex_inputs_accepted(self):
        key = make_key(1)
        assert SignatureValidator().verify(key.identity, "0x" + DIGEST.hex(), key.sign(DIGEST).hex())

    @pytest.mark.parametrize("signature", [b"", b"\x01" * 63, b"\x01" * 65, "not-hex", None, 42])
    def test_malformed_signature_is_invalid_not_error(self, signature):
        assert SignatureValidator().verify(make_key(1).identity, DIGEST, signature) is False

    @pytest.mark.parametrize("digest", [b"", b"\x01" * 31, b"\x01" * 33, "zz", None])
    def test_malformed_digest_is_invalid_not_error(self, digest):
        key = make_key(1)
        assert SignatureValidator().verify(key.identity, digest, key.sign(DIGEST)) is False

    def test_null_identity_never_verifies(self):
        assert not SignatureValidator().verify(Identity.NULL, DIGEST, b"\x00" * 64)

    def test_resolves_to_key_authenticator(self):
        assert isinstance(AuthenticatorDirectory().resolve(make_key(1).identity), KeyAuthenticator)


# =============================================================================
# DELEGATED IDENTITIES
# =============================================================================

class TestDelegatedSignatures:
    """Delegated identities answer through their verifier."""

    DELEGATE = Identity(b"\x77" * 32)

    def _validator(self, verifier):
        directory = AuthenticatorDirectory()
        directory.register(self.DELEGATE, verifier)
        return SignatureValidator(directory)

    def test_magic_value_is_valid(self):
        verifier = FixedVerifier(MAGIC_VALUE)
        assert self._validator(verifier).verify(self.DELEGATE, DIGEST, b"opaque-proof")
        assert verifier.calls == [(DIGEST, b"opaque-proof")]

    @pytest.mark.parametrize("result", [INVALID_VALUE, b"", b"\x16\x26\xba", None, True, "1626ba7e"])
    def test_anything_else_is_invalid(self, result):
        assert not self._validator(FixedVerifier(result)).verify(self.DELEGATE, DIGEST, b"sig")

    def test_raising_verifier_is_invalid(self):
        assert not self._validator(ExplodingVerifier()).verify(self.DELEGATE, DIGEST, b"sig")

    def test_resolves_to_delegated_authenticator(self):
        directory = AuthenticatorDirectory()
        directory.register(self.DELEGATE, FixedVerifier(MAGIC_VALUE))
        assert isinstance(directory.resolve(self.DELEGATE), DelegatedAuthenticator)
        assert directory.is_delegated(self.DELEGATE)

    def test_unregister_reverts_to_key_identity(self):
        directory = AuthenticatorDirectory()
        directory.register(self.DELEGATE, FixedVerifier(MAGIC_VALUE))
        assert directory.unregister(self.DELEGATE)
        assert not directory.unregister(self.DELEGATE)
        assert isinstance(directory.resolve(self.DELEGATE), KeyAuthenticator)

    def test_null_identity_cannot_be_registered(self):
        with pytest.raises(ValueError):
            AuthenticatorDirectory().register(Identity.NULL, FixedVerifier(MAGIC_VALUE))


# =============================================================================
# ACCOUNTS AS VERIFIERS
# =============================================================================

class TestAccountAsVerifier:
    """An account answers for its current owner's signatures."""

    def test_check_signature_uses_digest_as_given(self, account, owner):
        assert account.check_signature(DIGEST, owner.sign(DIGEST))
        assert not account.check_signature(DIGEST, make_key(99).sign(DIGEST))

    @pytest.mark.parametrize("byte_index", [0, 31, 32, 63], ids=["r-first", "r-last", "s-first", "s-last"])
    def test_single_bit_flip_invalidates(self, account, owner, byte_index):
        signature = bytearray(owner.sign(DIGEST))
        signature[byte_index] ^= 0x01
        assert not account.check_signature(DIGEST, bytes(signature))
        assert account.is_valid_signature(DIGEST, bytes(signature)) == INVALID_VALUE

    def test_is_valid_signature_magic(self, account, owner):
        assert account.is_valid_signature(DIGEST, owner.sign(DIGEST)) == MAGIC_VALUE
        assert account.is_valid_signature(DIGEST, make_key(99).sign(DIGEST)) == INVALID_VALUE

    def test_account_owns_another_account(self, owner, guardians):
        inner = SSIAccount.create(owner.identity, guardians=[g.identity for g in guardians[:3]])
        directory = AuthenticatorDirectory()
        directory.register(inner.account, inner)
        outer = SSIAccount.create(
            inner.account,
            guardians=[g.identity for g in guardians[2:5]],
            directory=directory,
        )

        assert outer.check_signature(DIGEST, owner.sign(DIGEST))
        assert not outer.check_signature(DIGEST, guardians[0].sign(DIGEST))

    def test_account_as_guardian_votes_with_owner_key(self, owner, new_owner, guardians):
        nested = SSIAccount.create(make_key(40).identity, guardians=[g.identity for g in guardians[:3]])
        directory = AuthenticatorDirectory()
        directory.register(nested.account, nested)
        target = SSIAccount.create(
            owner.identity,
            guardians=[guardians[3].identity, guardians[4].identity, nested.account],
            directory=directory,
        )

        digest = target.recovery_digest(new_owner.identity)
        target.recover(
            new_owner.identity,
            [guardians[3].identity, guardians[4].identity, nested.account],
            [guardians[3].sign(digest), guardians[4].sign(digest), make_key(40).sign(digest)],
        )
        assert target.owner == new_owner.identity
