"""Tests for app/core/firebase.py - Firebase Admin initialization."""

from unittest.mock import MagicMock, patch

from app.core.firebase import init_firebase


def test_init_firebase_already_initialized():
    """An existing default app is reused."""
    with (
        patch("app.core.firebase.get_app", return_value="mock_app") as mock_get_app,
        patch("app.core.firebase.initialize_app") as mock_init,
    ):
        init_firebase()

        mock_get_app.assert_called_once()
        mock_init.assert_not_called()


def test_init_firebase_with_application_default_credentials():
    """Without FIREBASE_PROJECT_ID the SDK discovers the project itself."""
    with (
        patch("app.core.firebase.get_app", side_effect=ValueError("no app")),
        patch("app.core.firebase.initialize_app") as mock_init,
        patch(
            "app.core.firebase.get_settings",
            return_value=MagicMock(firebase_project_id=None),
        ),
    ):
        init_firebase()

        mock_init.assert_called_once_with(options=None)


def test_init_firebase_with_project_id():
    with (
        patch("app.core.firebase.get_app", side_effect=ValueError("no app")),
        patch("app.core.firebase.initialize_app") as mock_init,
        patch(
            "app.core.firebase.get_settings",
            return_value=MagicMock(firebase_project_id="verigate-dev"),
        ),
    ):
        init_firebase()

        mock_init.assert_called_once_with(options={"projectId": "verigate-dev"})
