"""tyron.identity

Principal identities and guardian registry keys.

An ``Identity`` is an opaque 32-byte value. For key principals it is the raw
Ed25519 public key, which makes every key identity renderable as a
``did:key`` (Ed25519 multicodec ``0xed01``). Delegated principals (other
accounts, contracts with their own verification capability) use arbitrary
32-byte values registered with an ``AuthenticatorDirectory``.

A ``GuardianId`` is a one-way digest of an identity; the guardian registry is
keyed by it so raw guardian identities never appear in account state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from tyron.core import jcs_canonicalize, sha256
from tyron.hardening import MalformedInput, Validators


# Base58 implementation (no external deps)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

ED25519_MULTICODEC = bytes([0xED, 0x01])
GUARDIAN_ID_DOMAIN = b"tyron.guardian.v1"


def b58decode(s: Union[str, bytes]) -> bytes:
    s_bytes = s.encode("ascii") if isinstance(s, str) else s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


@dataclass(frozen=True)
class Identity:
    """Fixed-width principal identifier."""

    raw: bytes

    WIDTH: ClassVar[int] = 32
    NULL: ClassVar["Identity"]

    def __post_init__(self):
        result = Validators.validate_identity_bytes(self.raw, "identity")
        result.raise_if_invalid()
        object.__setattr__(self, "raw", result.sanitized_value)

    @classmethod
    def from_hex(cls, value: str) -> "Identity":
        """Parse ``0x``-prefixed or bare hex (any case)."""
        if not isinstance(value, str):
            raise MalformedInput("identity", f"Expected hex string, got {type(value).__name__}", value)
        return cls(value)  # type: ignore[arg-type]

    @classmethod
    def parse(cls, value: Any) -> "Identity":
        """Accept an Identity, raw bytes, hex or a did:key string."""
        if isinstance(value, Identity):
            return value
        if isinstance(value, str) and value.startswith("did:key:"):
            return cls.from_did_key(value)
        return cls(value)

    @classmethod
    def derive(cls, label: str, payload: Any) -> "Identity":
        """Deterministically derive an identity from a label and JSON payload."""
        return cls(sha256(label.encode("utf-8") + b"\x00" + jcs_canonicalize(payload)))

    @classmethod
    def from_did_key(cls, did: str) -> "Identity":
        """Parse a ``did:key`` (Ed25519) into its key identity."""
        did = did.split("#", 1)[0]
        if not did.startswith("did:key:z"):
            raise MalformedInput("identity", "Only did:key:z... supported", did)
        try:
            decoded = b58decode(did[len("did:key:z"):])
        except ValueError as ex:
            raise MalformedInput("identity", str(ex), did) from ex
        if not decoded.startswith(ED25519_MULTICODEC):
            raise MalformedInput("identity", "did:key multicodec prefix not recognized for Ed25519", did)
        return cls(decoded[len(ED25519_MULTICODEC):])

    @property
    def is_null(self) -> bool:
        return self.raw == b"\x00" * self.WIDTH

    @property
    def hex(self) -> str:
        return "0x" + self.raw.hex()

    def to_did_key(self) -> str:
        return "did:key:z" + b58encode(ED25519_MULTICODEC + self.raw)

    def short(self) -> str:
        """Abbreviated form for log lines."""
        h = self.raw.hex()
        return f"0x{h[:6]}…{h[-4:]}"

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"Identity({self.hex})"


Identity.NULL = Identity(b"\x00" * Identity.WIDTH)


@dataclass(frozen=True)
class GuardianId:
    """Registry key of a guardian: SHA-256 over a domain tag and the identity."""

    digest: bytes

    def __post_init__(self):
        result = Validators.validate_digest(self.digest, "guardian_id")
        result.raise_if_invalid()
        object.__setattr__(self, "digest", result.sanitized_value)

    @classmethod
    def of(cls, identity: Identity) -> "GuardianId":
        return cls(sha256(GUARDIAN_ID_DOMAIN + identity.raw))

    @classmethod
    def from_hex(cls, value: str) -> "GuardianId":
        return cls(value)  # type: ignore[arg-type]

    @property
    def hex(self) -> str:
        return "0x" + self.digest.hex()

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"GuardianId({self.hex})"
