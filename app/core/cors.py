from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.settings import get_settings

# The API only takes bearer tokens, never cookies, outside the admin panel.
ALLOWED_METHODS = ["GET", "POST", "PATCH", "OPTIONS"]
ALLOWED_HEADERS = ["Authorization", "Content-Type"]


def add_cors_middleware(app: FastAPI):
    settings = get_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=["Retry-After"],
    )
