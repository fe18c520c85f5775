import logging
import secrets

from sqladmin.authentication import AuthenticationBackend
from starlette.middleware import Middleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from app.core.settings import get_settings

logger = logging.getLogger(__name__)


class AdminAuth(AuthenticationBackend):
    """SQLAdmin auth for the profile panel using Starlette sessions."""

    def __init__(self) -> None:
        settings = get_settings()
        super().__init__(secret_key=settings.session_secret_key)
        # Same session middleware SQLAdmin installs, with Secure cookies outside dev.
        self.middlewares = [
            Middleware(
                SessionMiddleware,
                secret_key=settings.session_secret_key,
                https_only=settings.is_secure_cookie,
            )
        ]

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = str(form.get("username", form.get("email", ""))).strip()
        password = str(form.get("password", ""))

        settings = get_settings()
        ok = secrets.compare_digest(
            username.encode(), settings.admin_username.encode()
        ) and secrets.compare_digest(password.encode(), settings.admin_password.encode())
        if ok:
            request.session["admin_user"] = username
        else:
            logger.warning("Admin panel login rejected")
        return ok

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        return bool(request.session.get("admin_user"))
