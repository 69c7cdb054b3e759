# projecthub/core/policy.py
"""
Role requirements per project operation.

The same table is enforced twice: by the access-control service before any
work is done, and by the repositories against the acting user's membership
row inside each store operation. ``firestore.rules`` mirrors it for client
SDK access.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional

from projecthub.models.role import Role


class Operation(str, Enum):
    VIEW_PROJECT = "view"
    VIEW_MEMBERS = "view members of"
    SUBSCRIBE = "subscribe to"
    UPDATE_PROJECT = "update"
    DELETE_PROJECT = "delete"
    ADD_MEMBER = "add members to"
    REMOVE_MEMBER = "remove members from"


_ANY_MEMBER = frozenset({Role.OWNER, Role.EDITOR, Role.VIEWER})

OPERATION_ROLES: Dict[Operation, FrozenSet[Role]] = {
    Operation.VIEW_PROJECT: _ANY_MEMBER,
    Operation.VIEW_MEMBERS: _ANY_MEMBER,
    Operation.SUBSCRIBE: _ANY_MEMBER,
    Operation.UPDATE_PROJECT: frozenset({Role.OWNER, Role.EDITOR}),
    Operation.DELETE_PROJECT: frozenset({Role.OWNER}),
    Operation.ADD_MEMBER: frozenset({Role.OWNER}),
    Operation.REMOVE_MEMBER: frozenset({Role.OWNER}),
}


def is_allowed(role: Optional[Role], operation: Operation) -> bool:
    if role is None:
        return False
    return role in OPERATION_ROLES[operation]
