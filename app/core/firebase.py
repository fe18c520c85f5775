import logging

from firebase_admin import get_app, initialize_app

from app.core.settings import get_settings

logger = logging.getLogger(__name__)


def init_firebase() -> None:
    """Initialize the Firebase Admin SDK used to verify bearer ID tokens.

    Idempotent. Credentials come from GOOGLE_APPLICATION_CREDENTIALS; token
    verification only needs the project id, so FIREBASE_PROJECT_ID is enough
    where no service account is mounted.
    """
    try:
        get_app()
    except ValueError:
        project_id = get_settings().firebase_project_id
        initialize_app(options={"projectId": project_id} if project_id else None)
        logger.info("Firebase Admin SDK initialized (project=%s)", project_id)
