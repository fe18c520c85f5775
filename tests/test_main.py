"""Tests for app/main.py - Application lifespan and initialization."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI

from app.main import app, lifespan


@pytest.mark.asyncio
async def test_lifespan_initialization():
    """Test lifespan initializes Firebase and tables, then closes the client."""
    mock_app = FastAPI()

    with (
        patch("app.main.init_firebase") as mock_firebase,
        patch("app.main.create_db_and_tables") as mock_tables,
        patch("app.main.close_identity_client", new_callable=AsyncMock) as mock_close,
    ):
        async with lifespan(mock_app):
            mock_firebase.assert_called_once()
            mock_tables.assert_called_once()
            mock_close.assert_not_called()

        mock_close.assert_awaited_once()


def test_routes_registered():
    paths = {route.path for route in app.routes}

    assert "/health" in paths
    assert "/profiles/me" in paths
    assert "/profiles/me/verification" in paths
    assert "/verifications" in paths
    assert "/verifications/{user_id}/approve" in paths
    assert "/verifications/{user_id}/reject" in paths
