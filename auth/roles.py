"""
auth/roles.py -- Static role -> rights table and the authorization check.

RoleRights is built once at startup and stored on app.state; nothing mutates
it afterwards. The evaluator functions are pure: same inputs, same answer,
no I/O.

Rule:
  - No required rights: allow. Authentication alone is enough.
  - Otherwise allow when the user's role grants EVERY required right,
    or when the route acts on the user themselves (subject_user_id == user.id).
  - Deny everything else.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from auth.errors import AuthorizationDeniedError
from auth.models import Role, User

DEFAULT_ROLE_RIGHTS: dict[str, tuple[str, ...]] = {
    Role.USER.value: (),
    Role.ADMIN.value: ("getUsers", "manageUsers"),
}


class RoleRights:
    """Immutable mapping of role name to the ordered rights it grants."""

    def __init__(self, table: Mapping[str, Iterable[str]]) -> None:
        self._table = MappingProxyType({role: tuple(dict.fromkeys(rights)) for role, rights in table.items()})

    @classmethod
    def default(cls) -> "RoleRights":
        return cls(DEFAULT_ROLE_RIGHTS)

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(self._table)

    def rights_for(self, role: str | None) -> tuple[str, ...]:
        """Return the rights granted to role. Unknown roles grant nothing."""
        if role is None:
            return ()
        return self._table.get(role, ())

    def __contains__(self, role: object) -> bool:
        return role in self._table

    def __repr__(self) -> str:
        return f"RoleRights({dict(self._table)!r})"


def check(
    role_rights: RoleRights,
    user: User,
    required_rights: Iterable[str],
    subject_user_id: str | None = None,
) -> bool:
    """Return True if user may proceed on a route requiring required_rights."""
    required = set(required_rights)
    if not required:
        return True
    if subject_user_id is not None and subject_user_id == user.id:
        return True
    return required.issubset(role_rights.rights_for(user.role))


def authorize(
    role_rights: RoleRights,
    user: User,
    required_rights: Iterable[str],
    subject_user_id: str | None = None,
) -> None:
    """Raise AuthorizationDeniedError unless check() allows the request."""
    if not check(role_rights, user, required_rights, subject_user_id):
        raise AuthorizationDeniedError("Forbidden")
