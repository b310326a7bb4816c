from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class AuthUser:
    """Signed-in user as carried by the session cookie."""

    provider: str  # authentication scheme that produced the identity
    subject: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None  # preferred_username claim

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email or self.subject or "user"


@dataclass
class AuthenticationProperties:
    """State carried across a challenge or sign-out round trip."""

    redirect_uri: Optional[str] = None
    items: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"redirect_uri": self.redirect_uri, "items": dict(self.items)}

    @classmethod
    def from_dict(cls, data: object) -> "AuthenticationProperties":
        if not isinstance(data, dict):
            return cls()
        redirect_uri = data.get("redirect_uri")
        items = data.get("items")
        return cls(
            redirect_uri=str(redirect_uri) if redirect_uri else None,
            items={str(k): str(v) for k, v in items.items()} if isinstance(items, dict) else {},
        )
