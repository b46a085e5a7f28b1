"""
Contract of the external backend service.

Everything the application persists, authenticates or stores goes through
this interface. Implementations wrap their library and network errors in
``BackendError`` so callers handle a single exception type.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


class BackendError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class AuthFailure(BackendError):
    """Credentials were rejected or the session could not be established."""


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user: AuthUser
    expires_at: Optional[int] = None


# (event name, session or None)
SessionListener = Callable[[str, Optional[AuthSession]], None]


class BackendService:
    # Auth
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> AuthUser:
        raise NotImplementedError

    def sign_out(self, scope: str = "global") -> None:
        """End the session. ``local`` revokes only this client's session, ``global`` all of the user's."""
        raise NotImplementedError

    def restore_session(self, access_token: str, refresh_token: str) -> AuthSession:
        raise NotImplementedError

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session events; returns an unsubscribe callable."""
        raise NotImplementedError

    # Records
    def select(
        self,
        table: str,
        eq: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
        ascending: bool = True,
    ) -> List[dict]:
        raise NotImplementedError

    def insert(self, table: str, values: dict) -> dict:
        raise NotImplementedError

    def update(self, table: str, values: dict, eq: Dict[str, Any]) -> List[dict]:
        raise NotImplementedError

    def delete(self, table: str, eq: Dict[str, Any]) -> None:
        raise NotImplementedError

    def rpc(self, name: str, args: Optional[dict] = None) -> Any:
        raise NotImplementedError

    # Object storage
    def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        raise NotImplementedError

    def public_url(self, bucket: str, path: str) -> str:
        raise NotImplementedError

    def remove(self, bucket: str, paths: List[str]) -> None:
        raise NotImplementedError


class BackendFactory:
    """
    Builds backend clients.

    ``create()`` returns the client owned by one viewer's session context.
    ``create_ephemeral()`` returns a client that never persists or refreshes
    its session, used to issue credentials for someone else without touching
    the caller's own session.
    """

    def create(self) -> BackendService:
        raise NotImplementedError

    def create_ephemeral(self) -> BackendService:
        raise NotImplementedError
