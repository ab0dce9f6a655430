"""Actor identity model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

SYSTEM_ACTOR_ID = "system"


@dataclass(frozen=True)
class Actor:
    """Identity of whoever initiated, cancelled or accessed a deletion.

    The identity provider owns these records; they are attached verbatim to
    deletion requests and audit entries for display and forensic review.
    """

    id: str
    name: str = "Unknown"
    email: str = "Unknown"
    role: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Actor"]:
        if not data:
            return None
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "Unknown",
            email=data.get("email") or "Unknown",
            role=data.get("role") or "Unknown",
        )

    @classmethod
    def system(cls) -> "Actor":
        """Actor used for automatic executor transitions."""
        return cls(id=SYSTEM_ACTOR_ID, name="Deletion Executor", email="system", role="system")
