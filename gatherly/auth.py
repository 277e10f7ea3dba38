"""Resolve the signed-in user from a bearer access token."""

from __future__ import annotations

from fastapi import Request

from .datastore import DataStore


def get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def current_user_id(request: Request, store: DataStore) -> str | None:
    """Identifier of the signed-in user, or ``None`` when signed out."""
    return store.user_id_for_token(get_bearer_token(request))
