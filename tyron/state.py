"""tyron.state

The persisted state record of one account.

All mutable account state lives in a single ``AccountState`` that is handed
explicitly to every component operation. Components never keep a reference
to it between calls; ``SSIAccount`` owns the committed record and gives each
operation a private working copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from tyron.identity import GuardianId, Identity

STATE_FORMAT = "tyron.account.state.v1"


@dataclass
class AccountState:
    """Versioned account state."""
    account: Identity
    owner: Identity
    environment: Identity
    guardians: Dict[GuardianId, bool] = field(default_factory=dict)
    guardian_count: int = 0
    threshold: int = 0
    pending_owner: Optional[Identity] = None
    pending_since: Optional[int] = None
    implementation: str = ""
    version: int = 0

    def copy(self) -> "AccountState":
        """Working copy; identities are immutable so only the registry map is cloned."""
        return replace(self, guardians=dict(self.guardians))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": STATE_FORMAT,
            "account": self.account.hex,
            "owner": self.owner.hex,
            "environment": self.environment.hex,
            "guardians": sorted(gid.hex for gid, present in self.guardians.items() if present),
            "guardian_count": self.guardian_count,
            "threshold": self.threshold,
            "pending_owner": self.pending_owner.hex if self.pending_owner else None,
            "pending_since": self.pending_since,
            "implementation": self.implementation,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountState":
        pending = data.get("pending_owner")
        pending_since = data.get("pending_since")
        return cls(
            account=Identity.from_hex(data["account"]),
            owner=Identity.from_hex(data["owner"]),
            environment=Identity.from_hex(data["environment"]),
            guardians={GuardianId.from_hex(g): True for g in data.get("guardians", [])},
            guardian_count=int(data["guardian_count"]),
            threshold=int(data["threshold"]),
            pending_owner=Identity.from_hex(pending) if pending else None,
            pending_since=int(pending_since) if pending_since is not None else None,
            implementation=str(data.get("implementation", "")),
            version=int(data.get("version", 0)),
        )
