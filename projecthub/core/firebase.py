# projecthub/core/firebase.py
from pathlib import Path
import json
import logging

import firebase_admin
from firebase_admin import credentials, auth as fb_auth, firestore
from projecthub.config import settings

logger = logging.getLogger(__name__)

auth = fb_auth
_db = None


def _load_credentials():
    # 1) From the JSON env var (Render / production)
    if settings.FIREBASE_SERVICE_ACCOUNT_JSON:
        try:
            sa_info = json.loads(settings.FIREBASE_SERVICE_ACCOUNT_JSON)
        except json.JSONDecodeError as e:
            raise RuntimeError(
                "FIREBASE_SERVICE_ACCOUNT_JSON is not valid JSON"
            ) from e
        return credentials.Certificate(sa_info)

    # 2) Fallback to a local file (dev)
    sa_path = Path(settings.GOOGLE_APPLICATION_CREDENTIALS)
    if not sa_path.exists():
        raise RuntimeError(
            f"Firebase service account JSON not found: {sa_path}. "
            f"Set FIREBASE_SERVICE_ACCOUNT_JSON or GOOGLE_APPLICATION_CREDENTIALS."
        )
    return credentials.Certificate(str(sa_path))


def init_firebase():
    """Initialise the default Firebase app once; safe to call repeatedly."""
    if not firebase_admin._apps:
        firebase_admin.initialize_app(
            _load_credentials(),
            {"projectId": settings.FIREBASE_PROJECT_ID},
        )
        logger.info("Firebase app initialised (project=%s)", settings.FIREBASE_PROJECT_ID)


def get_db():
    global _db
    if _db is None:
        init_firebase()
        _db = firestore.client()
    return _db
