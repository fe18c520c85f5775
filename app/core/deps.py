"""Centralized dependency type aliases for FastAPI routes.

Import shared dependencies from this single module:
    from app.core.deps import SessionDep, SettingsDep, ProfileStoreDep
"""

from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from app.core.settings import Settings, get_settings
from app.db.engine import get_session
from app.profile.store import SqlProfileStore, get_profile_store

# Database session
SessionDep = Annotated[Session, Depends(get_session)]

# Application settings
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Profile store (also the source of profile-changed notifications)
ProfileStoreDep = Annotated[SqlProfileStore, Depends(get_profile_store)]
