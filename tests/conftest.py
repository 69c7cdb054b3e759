"""
Shared fixtures: an in-memory store, a fixed user directory and one change
channel, wired together the same way the app wires the real collaborators.
"""
from typing import Dict, Iterable, Optional

import pytest

from projecthub.errors import StoreUnavailable
from projecthub.models.auth import UserIdentity, UserProfile
from projecthub.repositories.memory_repository import MemoryRepository
from projecthub.services.change_feed import ChangeNotificationChannel
from projecthub.services.collaboration import ProjectCollaborationAPI
from projecthub.services.identity import default_display_name, normalize_email

ALICE = "uid-alice"
BOB = "uid-bob"
CAROL = "uid-carol"
DAVE = "uid-dave"


class StaticIdentityProvider:
    """Fixed user directory; ``as_user`` returns a provider acting as someone else."""

    def __init__(self, profiles: Iterable[UserProfile] = (), current_uid: Optional[str] = None):
        self._profiles: Dict[str, UserProfile] = {p.id: p for p in profiles}
        self._current_uid = current_uid

    def register(self, uid: str, email: str, display_name: Optional[str] = None) -> UserProfile:
        profile = UserProfile(id=uid, email=normalize_email(email),
                              display_name=display_name or default_display_name(email))
        self._profiles[uid] = profile
        return profile

    def as_user(self, uid: Optional[str]) -> "StaticIdentityProvider":
        other = StaticIdentityProvider(current_uid=uid)
        other._profiles = self._profiles
        return other

    async def current_user(self) -> Optional[UserIdentity]:
        profile = self._profiles.get(self._current_uid) if self._current_uid else None
        if profile is None:
            return None
        return UserIdentity(uid=profile.id, email=profile.email, display_name=profile.display_name)

    async def resolve_email(self, email: str) -> Optional[str]:
        wanted = normalize_email(email)
        for profile in self._profiles.values():
            if profile.email == wanted:
                return profile.id
        return None

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        return {uid: self._profiles[uid] for uid in user_ids if uid in self._profiles}


class FlakyRepository(MemoryRepository):
    """MemoryRepository whose method named by ``fail_next`` fails once with StoreUnavailable."""

    fail_next: Optional[str] = None


def _fail_once(name):
    async def method(self, *args, **kwargs):
        if self.fail_next == name:
            self.fail_next = None
            raise StoreUnavailable(operation=name)
        return await getattr(MemoryRepository, name)(self, *args, **kwargs)
    method.__name__ = name
    return method


for _name in (
    "create_project_with_owner", "fetch_project", "update_project", "delete_project",
    "list_projects_for_user", "fetch_membership", "list_memberships", "insert_membership",
    "delete_membership",
):
    setattr(FlakyRepository, _name, _fail_once(_name))


@pytest.fixture
def repo():
    return FlakyRepository()


@pytest.fixture
def directory():
    d = StaticIdentityProvider()
    d.register(ALICE, "alice@example.com", "Alice")
    d.register(BOB, "b@example.com", "Bob")
    d.register(CAROL, "carol@example.com", "Carol")
    d.register(DAVE, "dave@example.com", "Dave")
    return d


@pytest.fixture
def channel():
    return ChangeNotificationChannel()


@pytest.fixture
def api_for(repo, directory, channel):
    """Build the collaboration API acting as the given user id (None = signed out)."""
    def _make(uid):
        return ProjectCollaborationAPI(directory.as_user(uid), repo, channel)
    return _make


@pytest.fixture
def sample_tasks():
    return [
        {"id": "t1", "title": "Write outline", "responsible": "Alice", "due_date": "2026-11-01"},
        {"id": "t2", "title": "Review draft", "completed": True,
         "sub_steps": [{"id": "s1", "text": "Read chapter 1"}]},
    ]
