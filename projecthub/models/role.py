from enum import Enum
from typing import Dict, NamedTuple


class Role(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


class RoleDisplay(NamedTuple):
    label: str
    label_ja: str
    color: str          # tailwind badge classes used by the web client


ROLE_DISPLAY: Dict[Role, RoleDisplay] = {
    Role.OWNER: RoleDisplay("Owner", "オーナー", "bg-purple-100 text-purple-800"),
    Role.EDITOR: RoleDisplay("Editor", "編集者", "bg-blue-100 text-blue-800"),
    Role.VIEWER: RoleDisplay("Viewer", "閲覧者", "bg-gray-100 text-gray-800"),
}

# every role must have presentation metadata
_missing = set(Role) - set(ROLE_DISPLAY)
if _missing:
    raise RuntimeError(f"ROLE_DISPLAY missing entries for: {sorted(r.value for r in _missing)}")

# roles that may be granted through the member-management surface
ASSIGNABLE_ROLES = frozenset({Role.EDITOR, Role.VIEWER})


def display_for(role: Role, lang: str = "en") -> Dict[str, str]:
    meta = ROLE_DISPLAY[role]
    return {
        "role": role.value,
        "label": meta.label_ja if lang == "ja" else meta.label,
        "color": meta.color,
    }
