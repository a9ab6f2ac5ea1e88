"""Shared Firebase Admin app for Firestore and FCM."""

import logging

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)


def get_firebase_app(credentials_path: str = "") -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use.

    Without a service account path the SDK falls back to application default
    credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    cred = credentials.Certificate(credentials_path) if credentials_path else None
    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase app initialized (project=%s)", app.project_id)
    return app
