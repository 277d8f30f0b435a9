"""Firebase Admin initialization shared by the Firestore and Storage adapters."""

import json
import logging

import firebase_admin
from firebase_admin import credentials

from linkstore.core.config import settings

logger = logging.getLogger(__name__)

firebase_app: firebase_admin.App | None = None


def initialize_firebase() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK once and return the app.

    Credentials come from inline JSON, then a credentials file, then
    application default credentials.
    """
    global firebase_app  # noqa: PLW0603

    if firebase_app:
        return firebase_app

    if settings.firebase_credentials_json:
        cred = credentials.Certificate(json.loads(settings.firebase_credentials_json))
    elif settings.firebase_credentials_path:
        cred = credentials.Certificate(settings.firebase_credentials_path)
    else:
        cred = credentials.ApplicationDefault()

    options: dict[str, str] = {"storageBucket": settings.storage_bucket}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id

    try:
        firebase_app = firebase_admin.initialize_app(cred, options)
    except ValueError:
        # Default app already initialized elsewhere in the process
        firebase_app = firebase_admin.get_app()
    logger.info("Firebase Admin SDK initialized for bucket %s", settings.storage_bucket)
    return firebase_app
