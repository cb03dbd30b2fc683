# Overview: The verified identity claim attached to each request.

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Identity:
    """
    Who is calling, as asserted by a verified token.

    Produced once per request by session_service.resolve() and never
    mutated afterwards. `branch` is None for users not assigned to a branch
    (typically admins).
    """
    user_id: str
    email: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)
    branch: str | None = None

    @classmethod
    def build(cls, *, user_id, email, role, permissions=None, branch=None) -> "Identity":
        return cls(
            user_id=str(user_id),
            email=email or "",
            role=role or "",
            permissions=frozenset(p for p in (permissions or []) if isinstance(p, str)),
            branch=str(branch) if branch not in (None, "") else None,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "permissions": sorted(self.permissions),
            "branch": self.branch,
        }
