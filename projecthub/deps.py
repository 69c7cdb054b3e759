from functools import lru_cache

from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from projecthub.config import settings
from projecthub.repositories.base import CollaborationRepository
from projecthub.services.change_feed import ChangeNotificationChannel
from projecthub.services.collaboration import ProjectCollaborationAPI
from projecthub.services.identity import FirebaseIdentityProvider, IdentityProvider

security = HTTPBearer()


@lru_cache
def get_repository() -> CollaborationRepository:
    if settings.STORE_BACKEND == "memory":
        from projecthub.repositories.memory_repository import MemoryRepository
        return MemoryRepository()
    from projecthub.repositories.firestore_repository import FirestoreRepository
    return FirestoreRepository()


@lru_cache
def get_channel() -> ChangeNotificationChannel:
    return ChangeNotificationChannel()


def identity_from_token(token: str) -> IdentityProvider:
    try:
        return FirebaseIdentityProvider.from_id_token(token)
    except Exception as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")


def get_identity(credentials: HTTPAuthorizationCredentials = Depends(security)) -> IdentityProvider:
    return identity_from_token(credentials.credentials)


def get_collaboration_api(
    identity: IdentityProvider = Depends(get_identity),
    repository: CollaborationRepository = Depends(get_repository),
    channel: ChangeNotificationChannel = Depends(get_channel),
) -> ProjectCollaborationAPI:
    return ProjectCollaborationAPI(identity, repository, channel)
