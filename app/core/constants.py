"""
App-wide constants for route configuration.

This module provides a single source of truth for route prefixes, tags,
and common response definitions for API routes.
"""

from dataclasses import dataclass
from typing import Any

from app.models.error import ErrorResponse


@dataclass(frozen=True)
class RouteConfig:
    """Configuration for a route group."""

    prefix: str
    tag: str


class Routes:
    """Route configurations for all API endpoints."""

    PROFILE = RouteConfig(prefix="/profiles", tag="profiles")
    # Not under /admin: the SQLAdmin panel is mounted there.
    VERIFICATION = RouteConfig(prefix="/verifications", tag="verifications")
    HEALTH = RouteConfig(prefix="/health", tag="health")


class CommonResponses:
    """Standard HTTP error response definitions for OpenAPI documentation."""

    UNAUTHORIZED: dict[int, dict[str, Any]] = {
        401: {
            "model": ErrorResponse,
            "description": "Not authenticated or invalid token",
        }
    }
    FORBIDDEN: dict[int, dict[str, Any]] = {
        403: {
            "model": ErrorResponse,
            "description": "Account disabled or lacks admin privileges",
        }
    }
    NOT_FOUND: dict[int, dict[str, Any]] = {
        404: {
            "model": ErrorResponse,
            "description": "Profile not provisioned yet",
        }
    }
    CONFLICT: dict[int, dict[str, Any]] = {
        409: {
            "model": ErrorResponse,
            "description": "Verification is not in a reviewable state",
        }
    }
    SERVICE_UNAVAILABLE: dict[int, dict[str, Any]] = {
        503: {
            "model": ErrorResponse,
            "description": "Profile store unavailable",
        }
    }
