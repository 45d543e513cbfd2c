"""
Permission gate -- yes/no authorization for movement actions.

Responsibility:
    Answers "may this actor perform this movement action?"  The gate is
    constructed explicitly and injected into the ledger, batch processor and
    query service; there is no module-level instance.

Architecture position:
    Kernel > Services.  Role resolution itself is external: the
    RolePermissionGate takes a resolver callable (actor id -> role name)
    supplied by the application.

Failure modes:
    - The resolver may raise; the exception propagates to the caller.
      A missing role (resolver returns None) is a denial, not an error.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from uuid import UUID

from stock_kernel.domain.values import MovementAction
from stock_kernel.exceptions import PermissionDeniedError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.permission_gate")

RoleResolver = Callable[[UUID], "str | None"]


class PermissionGate(ABC):
    """Injected authorization check for movement actions."""

    @abstractmethod
    def check_movement_permission(
        self,
        actor_id: UUID | None,
        action: MovementAction,
    ) -> bool:
        """True if ``actor_id`` may perform ``action``.  None is the system actor."""
        ...

    def require(self, actor_id: UUID | None, action: MovementAction) -> None:
        """Raise PermissionDeniedError unless the action is allowed."""
        if not self.check_movement_permission(actor_id, action):
            logger.warning(
                "permission_denied",
                extra={
                    "actor_id": str(actor_id) if actor_id else None,
                    "action": action.value,
                },
            )
            raise PermissionDeniedError(actor_id, action.value)


class AllowAllPermissionGate(PermissionGate):
    """Gate that allows everything.  For tooling and tests."""

    def check_movement_permission(self, actor_id, action) -> bool:
        return True


class RolePermissionGate(PermissionGate):
    """
    Role-based gate with an explicit resolution cache.

    Contract:
        ``role_resolver`` maps an actor id to a role name (or None).
        ``role_actions`` maps role names to the actions they may perform.
        ``system_actions`` are granted to the system actor (``actor_id`` None).

    Guarantees:
        - Each actor's role is resolved at most once until ``invalidate()``
          is called for that actor (or for everyone).
        - Thread-safe: the cache is guarded by a lock.
    """

    def __init__(
        self,
        role_resolver: RoleResolver,
        role_actions: Mapping[str, Iterable[MovementAction | str]],
        system_actions: Iterable[MovementAction | str] = (),
    ):
        self._resolve_role = role_resolver
        self._role_actions: dict[str, frozenset[MovementAction]] = {
            role: frozenset(MovementAction(a) for a in actions)
            for role, actions in role_actions.items()
        }
        self._system_actions = frozenset(MovementAction(a) for a in system_actions)
        self._role_cache: dict[UUID, str | None] = {}
        self._lock = threading.Lock()

    def role_for(self, actor_id: UUID) -> str | None:
        with self._lock:
            if actor_id in self._role_cache:
                return self._role_cache[actor_id]
        role = self._resolve_role(actor_id)
        with self._lock:
            self._role_cache[actor_id] = role
        return role

    def check_movement_permission(
        self,
        actor_id: UUID | None,
        action: MovementAction,
    ) -> bool:
        action = MovementAction(action)
        if actor_id is None:
            return action in self._system_actions
        role = self.role_for(actor_id)
        if role is None:
            return False
        return action in self._role_actions.get(role, frozenset())

    def invalidate(self, actor_id: UUID | None = None) -> None:
        """Forget cached roles: one actor's, or everyone's when None."""
        with self._lock:
            if actor_id is None:
                self._role_cache.clear()
            else:
                self._role_cache.pop(actor_id, None)
        logger.debug(
            "permission_cache_invalidated",
            extra={"actor_id": str(actor_id) if actor_id else "*"},
        )
