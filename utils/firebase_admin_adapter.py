"""
Firebase Admin initialization shared by the Firestore store and the
dashboard's ID-token check. The default app is initialized at most once per
process.
"""
import logging
import os
import threading
from typing import Any, Dict

import firebase_admin
from firebase_admin import auth, credentials

from utils.config import Settings

logger = logging.getLogger("backend.firebase")

_init_lock = threading.Lock()


class FirebaseUnavailable(Exception):
    """Firebase Admin could not be initialized with the configured credentials."""


def initialize_firebase_admin(settings: Settings):
    """Return the default Firebase app, initializing it once.

    Credential sources, in order: an already initialized app, the
    GOOGLE_APPLICATION_CREDENTIALS file, FIREBASE_PROJECT_ID /
    FIREBASE_CLIENT_EMAIL / FIREBASE_PRIVATE_KEY, application default.
    """
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            logger.info("Firebase Admin not initialized yet, initializing now")

        try:
            cred_path = settings.google_credentials_path
            if cred_path and os.path.exists(cred_path):
                logger.info("Initializing Firebase with credentials file: %s", cred_path)
                return firebase_admin.initialize_app(credentials.Certificate(cred_path))
            if cred_path:
                logger.error("Credentials file not found: %s", cred_path)

            if settings.firebase_private_key and settings.firebase_project_id and settings.firebase_client_email:
                cert = credentials.Certificate({
                    "type": "service_account",
                    "project_id": settings.firebase_project_id,
                    "client_email": settings.firebase_client_email,
                    "private_key": settings.firebase_private_key,
                    "token_uri": "https://oauth2.googleapis.com/token",
                })
                logger.info("Initializing Firebase with service account from environment")
                return firebase_admin.initialize_app(cert, {"projectId": settings.firebase_project_id})

            logger.info("No explicit Firebase credentials, trying application default")
            return firebase_admin.initialize_app()
        except Exception as e:
            logger.error("Firebase Admin initialization failed: %s", e)
            raise FirebaseUnavailable(f"Firebase configuration is incomplete: {e}") from e


def verify_id_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Verify a Firebase ID token and return its decoded claims."""
    app = initialize_firebase_admin(settings)
    return auth.verify_id_token(token, app=app)
