from dataclasses import dataclass, field
from typing import FrozenSet, Iterable

from .permissions import Permission


@dataclass(frozen=True)
class ActorContext:
    """Authenticated actor and the organization every request is scoped to."""

    user_id: int
    organization_id: int
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def build(cls, user_id: int, organization_id: int, permissions: Iterable[str] = ()) -> "ActorContext":
        return cls(
            user_id=int(user_id),
            organization_id=int(organization_id),
            permissions=frozenset(str(p) for p in permissions)
        )

    def has_permission(self, permission: Permission) -> bool:
        return permission.value in self.permissions

    def owns(self, organization_id: int) -> bool:
        return organization_id == self.organization_id
