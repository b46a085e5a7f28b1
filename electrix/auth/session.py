"""
Per-viewer session state.

A ``SessionContext`` belongs to one browser session. It owns the backend
client authenticated as that viewer, the identity resolved for it and the
in-memory state of the screens the viewer has opened. The session-change
handler is the only code that writes ``session``, ``user``, ``profile`` and
``loading``; everything else reads.
"""
import threading
import time
import uuid
from typing import Callable, Dict, Optional

import structlog
from pydantic import ValidationError

from ..backend.service import AuthFailure, AuthSession, AuthUser, BackendError, BackendFactory, BackendService
from ..config import settings
from ..schemas.auth import Profile, Role
from ..utils import rut_to_email


logger = structlog.get_logger(__name__)


class SessionContext:
    def __init__(self, sid: str, backend: BackendService):
        self.sid = sid
        self.backend = backend
        self.session: Optional[AuthSession] = None
        self.user: Optional[AuthUser] = None
        self.profile: Optional[Profile] = None
        self.loading = True
        self.screens: Dict[str, object] = {}
        self.active_screen: Optional[str] = None
        self.last_seen = 0.0
        self._lock = threading.RLock()
        self._unsubscribe = backend.on_session_change(self._on_session_change)

    @property
    def role(self) -> Optional[Role]:
        return self.profile.role if self.profile else None

    @property
    def is_supervisor(self) -> bool:
        return self.role == Role.SUPERVISOR

    @property
    def authenticated(self) -> bool:
        return not self.loading and self.session is not None and self.profile is not None

    def _on_session_change(self, event: str, session: Optional[AuthSession]) -> None:
        if session is None:
            with self._lock:
                self.session = None
                self.user = None
                self.profile = None
                self.loading = False
            logger.info("session_cleared", sid=self.sid, event_name=event)
            return

        with self._lock:
            same_identity = self.profile is not None and self.user is not None and self.user.id == session.user.id
            if same_identity:
                # Token refresh: identity unchanged, only the tokens move
                self.session = session
                return

        profile = self._fetch_profile(session.user.id)
        with self._lock:
            self.session = session
            self.user = session.user
            self.profile = profile
            self.loading = False
        logger.info("session_established", sid=self.sid, event_name=event, user_id=session.user.id,
                    role=profile.role.value if profile else None)

    def _fetch_profile(self, user_id: str) -> Optional[Profile]:
        try:
            rows = self.backend.select("profiles", eq={"id": user_id})
        except BackendError as e:
            logger.warning("profile_fetch_failed", sid=self.sid, user_id=user_id, error=e.message)
            return None
        if not rows:
            return None
        try:
            return Profile(**rows[0])
        except ValidationError as e:
            logger.warning("profile_invalid", sid=self.sid, user_id=user_id, error=str(e))
            return None

    def establish(self, session: AuthSession) -> None:
        """Make sure the handler has run for ``session`` and the identity is usable."""
        with self._lock:
            pending = self.loading or self.session is None or self.session.access_token != session.access_token
        if pending:
            self._on_session_change("SIGNED_IN", session)
        if self.profile is None:
            raise AuthFailure("Perfil no encontrado")
        if not self.profile.is_active:
            raise AuthFailure("Cuenta desactivada")

    def open_screen(self, name: str, build: Callable[[], object]):
        """
        Return the screen ``name``, mounting it when the viewer navigates into it.

        Staying on the same screen (e.g. the redirect after an action) renders
        the in-memory state without fetching again.
        """
        with self._lock:
            previous = self.active_screen
            screen = self.screens.get(name)
            if screen is None:
                screen = build()
                self.screens[name] = screen
            navigated = previous != name or not screen.mounted
            if navigated and previous and previous != name and previous in self.screens:
                self.screens[previous].unmount()
            self.active_screen = name
        if navigated:
            screen.mount()
        return screen

    def close(self) -> None:
        with self._lock:
            for screen in self.screens.values():
                screen.unmount()
            self.screens.clear()
            self.active_screen = None
        self._unsubscribe()


class SessionStore:
    """
    Live contexts keyed by browser session id.

    A context left idle for ``idle_seconds`` is dropped on the next lookup and
    its backend session is signed out, so its client stops refreshing tokens.
    The viewer then has to sign in again.
    """

    def __init__(
        self,
        factory: BackendFactory,
        idle_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.factory = factory
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.session_idle_seconds
        self.clock = clock
        self._contexts: Dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def _new_context(self, sid: str) -> SessionContext:
        ctx = SessionContext(sid, self.factory.create())
        ctx.last_seen = self.clock()
        return ctx

    def _sweep(self) -> None:
        now = self.clock()
        with self._lock:
            expired = [ctx for ctx in self._contexts.values() if now - ctx.last_seen > self.idle_seconds]
            for ctx in expired:
                del self._contexts[ctx.sid]
        for ctx in expired:
            logger.info("session_evicted", sid=ctx.sid, idle=round(now - ctx.last_seen))
            self._abandon(ctx, scope="local")

    def get(self, sid: str) -> Optional[SessionContext]:
        self._sweep()
        with self._lock:
            ctx = self._contexts.get(sid)
            if ctx is not None:
                ctx.last_seen = self.clock()
            return ctx

    def sign_in(self, rut: str, password: str) -> SessionContext:
        self._sweep()
        ctx = self._new_context(uuid.uuid4().hex)
        try:
            session = ctx.backend.sign_in_with_password(rut_to_email(rut), password)
            ctx.establish(session)
        except BackendError:
            self._abandon(ctx)
            raise
        with self._lock:
            self._contexts[ctx.sid] = ctx
        logger.info("sign_in", sid=ctx.sid, user_id=ctx.user.id, role=ctx.role.value)
        return ctx

    def restore(self, sid: str, access_token: str, refresh_token: str) -> Optional[SessionContext]:
        """Rebuild the context of a known browser session from its stored tokens."""
        self._sweep()
        with self._lock:
            existing = self._contexts.get(sid)
            if existing is not None:
                existing.last_seen = self.clock()
                return existing
            ctx = self._new_context(sid)
            # Visible as loading to concurrent requests while it restores
            self._contexts[sid] = ctx
        try:
            session = ctx.backend.restore_session(access_token, refresh_token)
            ctx.establish(session)
        except BackendError as e:
            logger.info("session_restore_failed", sid=sid, error=e.message)
            with self._lock:
                self._contexts.pop(sid, None)
            self._abandon(ctx)
            return None
        return ctx

    def sign_out(self, sid: str) -> None:
        with self._lock:
            ctx = self._contexts.pop(sid, None)
        if ctx is None:
            return
        try:
            ctx.backend.sign_out()
        except BackendError as e:
            logger.warning("sign_out_failed", sid=sid, error=e.message)
        ctx.close()
        logger.info("sign_out", sid=sid)

    def _abandon(self, ctx: SessionContext, scope: str = "global") -> None:
        if ctx.session is not None:
            try:
                ctx.backend.sign_out(scope)
            except BackendError as e:
                logger.warning("sign_out_failed", sid=ctx.sid, error=e.message)
        ctx.close()
