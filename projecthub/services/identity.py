# projecthub/services/identity.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional, Protocol

from firebase_admin import auth as fb_auth, exceptions as fb_exceptions
from google.api_core import exceptions as gexc

from projecthub.core.firebase import init_firebase
from projecthub.errors import StoreUnavailable
from projecthub.models.auth import UserIdentity, UserProfile

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def default_display_name(email: str) -> str:
    return email.split("@", 1)[0]


class IdentityProvider(Protocol):
    async def current_user(self) -> Optional[UserIdentity]: ...

    async def resolve_email(self, email: str) -> Optional[str]: ...

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]: ...


# ---------- Firebase Authentication ----------

class FirebaseIdentityProvider:
    """
    Identity bound to one verified Firebase ID token (or to nobody).

    Built per request by ``projecthub.deps``; lookups go through the Admin SDK.
    """

    def __init__(self, decoded_token: Optional[dict] = None):
        self._decoded = decoded_token

    @classmethod
    def from_id_token(cls, id_token: str) -> "FirebaseIdentityProvider":
        init_firebase()
        return cls(fb_auth.verify_id_token(id_token))

    async def current_user(self) -> Optional[UserIdentity]:
        if not self._decoded or not self._decoded.get("uid"):
            return None
        email = self._decoded.get("email") or ""
        return UserIdentity(
            uid=self._decoded["uid"],
            email=email,
            display_name=self._decoded.get("name") or (default_display_name(email) if email else None),
        )

    async def resolve_email(self, email: str) -> Optional[str]:
        loop = asyncio.get_running_loop()

        def _lookup():
            try:
                return fb_auth.get_user_by_email(normalize_email(email)).uid
            except fb_auth.UserNotFoundError:
                return None

        try:
            return await loop.run_in_executor(None, _lookup)
        except (fb_exceptions.FirebaseError, gexc.GoogleAPIError) as e:
            logger.exception("resolve_email failed")
            raise StoreUnavailable(operation="resolve_email") from e

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        loop = asyncio.get_running_loop()

        def _lookup():
            out: Dict[str, UserProfile] = {}
            # get_users accepts at most 100 identifiers per call
            for i in range(0, len(ids), 100):
                result = fb_auth.get_users([fb_auth.UidIdentifier(uid) for uid in ids[i:i + 100]])
                for u in result.users:
                    out[u.uid] = UserProfile(
                        id=u.uid,
                        email=u.email or "Unknown",
                        display_name=u.display_name or (default_display_name(u.email) if u.email else None),
                    )
            return out

        try:
            return await loop.run_in_executor(None, _lookup)
        except (fb_exceptions.FirebaseError, gexc.GoogleAPIError) as e:
            logger.exception("get_profiles failed")
            raise StoreUnavailable(operation="get_profiles") from e

