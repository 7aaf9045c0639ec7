# Overview: Role hierarchy used by the authorization decorators and the user-creation guard.

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


class RoleHierarchy:
    """
    Immutable total order over roles.

    Built once in create_app from config and stored on the app, so a
    deployment (or a test) can supply its own ranking without touching
    module state.
    """

    def __init__(self, levels: Mapping[str, int]):
        if not levels:
            raise ValueError("Role hierarchy needs at least one role")
        self._levels = MappingProxyType(dict(levels))

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(sorted(self._levels, key=self._levels.__getitem__, reverse=True))

    def rank(self, role: str | None) -> int | None:
        if role is None:
            return None
        return self._levels.get(role)

    def is_known(self, role: str | None) -> bool:
        return role in self._levels

    def meets(self, role: str | None, minimum: str) -> bool:
        """True when role ranks at or above minimum. Unknown roles never pass."""
        have = self.rank(role)
        need = self.rank(minimum)
        if have is None or need is None:
            return False
        return have >= need

    def can_assign(self, actor_role: str | None, target_role: str) -> bool:
        """An actor may only hand out roles ranked strictly below their own."""
        actor = self.rank(actor_role)
        target = self.rank(target_role)
        if actor is None or target is None:
            return False
        return target < actor
