from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog
from postgrest.exceptions import APIError
from storage3.utils import StorageException
from supabase import Client, ClientOptions, create_client
from supabase_auth.errors import AuthError

from ..config import settings
from .service import (
    AuthFailure,
    AuthSession,
    AuthUser,
    BackendError,
    BackendFactory,
    BackendService,
    SessionListener,
)


logger = structlog.get_logger(__name__)


def _to_user(user) -> AuthUser:
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def _to_session(session) -> AuthSession:
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=getattr(session, "expires_at", None),
        user=_to_user(session.user),
    )


def _wrap(exc: Exception) -> BackendError:
    if isinstance(exc, AuthError):
        return AuthFailure(exc.message, code=getattr(exc, "code", None))
    if isinstance(exc, APIError):
        return BackendError(exc.message or str(exc), code=exc.code)
    if isinstance(exc, StorageException):
        detail = exc.args[0] if exc.args else exc
        if isinstance(detail, dict):
            return BackendError(str(detail.get("message") or detail), code=str(detail.get("statusCode") or "") or None)
        return BackendError(str(detail))
    return BackendError(str(exc))


# Errors raised by the supabase client stack for a failed call
_CALL_ERRORS = (AuthError, APIError, StorageException, httpx.HTTPError)


class SupabaseBackend(BackendService):
    def __init__(self, client: Client):
        self._client = client

    # Auth
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        try:
            res = self._client.auth.sign_in_with_password({"email": email, "password": password})
        except _CALL_ERRORS as e:
            raise _wrap(e)
        if not res.session:
            raise AuthFailure("No session returned")
        return _to_session(res.session)

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> AuthUser:
        try:
            res = self._client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata or {}}}
            )
        except _CALL_ERRORS as e:
            raise _wrap(e)
        if not res.user:
            raise AuthFailure("No user returned")
        return _to_user(res.user)

    def sign_out(self, scope: str = "global") -> None:
        try:
            self._client.auth.sign_out({"scope": scope})
        except _CALL_ERRORS as e:
            raise _wrap(e)

    def restore_session(self, access_token: str, refresh_token: str) -> AuthSession:
        try:
            res = self._client.auth.set_session(access_token, refresh_token)
        except _CALL_ERRORS as e:
            raise _wrap(e)
        if not res.session:
            raise AuthFailure("Session expired")
        return _to_session(res.session)

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        def _callback(event, session):
            listener(str(event), _to_session(session) if session else None)

        subscription = self._client.auth.on_auth_state_change(_callback)
        return subscription.unsubscribe

    # Records
    def select(
        self,
        table: str,
        eq: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
        ascending: bool = True,
    ) -> List[dict]:
        query = self._client.table(table).select("*")
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        if order:
            query = query.order(order, desc=not ascending)
        try:
            return list(query.execute().data or [])
        except _CALL_ERRORS as e:
            raise _wrap(e)

    def insert(self, table: str, values: dict) -> dict:
        try:
            rows = self._client.table(table).insert(values).execute().data
        except _CALL_ERRORS as e:
            raise _wrap(e)
        if not rows:
            raise BackendError(f"Insert into {table} returned no row")
        return rows[0]

    def update(self, table: str, values: dict, eq: Dict[str, Any]) -> List[dict]:
        query = self._client.table(table).update(values)
        for column, value in eq.items():
            query = query.eq(column, value)
        try:
            return list(query.execute().data or [])
        except _CALL_ERRORS as e:
            raise _wrap(e)

    def delete(self, table: str, eq: Dict[str, Any]) -> None:
        query = self._client.table(table).delete()
        for column, value in eq.items():
            query = query.eq(column, value)
        try:
            query.execute()
        except _CALL_ERRORS as e:
            raise _wrap(e)

    def rpc(self, name: str, args: Optional[dict] = None) -> Any:
        try:
            return self._client.rpc(name, args or {}).execute().data
        except _CALL_ERRORS as e:
            raise _wrap(e)

    # Object storage
    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        try:
            self._client.storage.from_(bucket).upload(
                path=path, file=content, file_options={"content-type": content_type}
            )
        except _CALL_ERRORS as e:
            raise _wrap(e)
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return self._client.storage.from_(bucket).get_public_url(path)

    def remove(self, bucket: str, paths: List[str]) -> None:
        try:
            self._client.storage.from_(bucket).remove(paths)
        except _CALL_ERRORS as e:
            raise _wrap(e)


class SupabaseBackendFactory(BackendFactory):
    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        self.url = url or settings.supabase_url
        self.key = key or settings.supabase_anon_key

    def create(self) -> BackendService:
        # Session lives in the client's memory storage and is refreshed in the background
        client = create_client(
            self.url,
            self.key,
            options=ClientOptions(persist_session=True, auto_refresh_token=True),
        )
        return SupabaseBackend(client)

    def create_ephemeral(self) -> BackendService:
        client = create_client(
            self.url,
            self.key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False),
        )
        logger.info("ephemeral_backend_created")
        return SupabaseBackend(client)
