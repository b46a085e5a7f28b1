import pytest

from electrix.auth.session import SessionContext, SessionStore
from electrix.backend.service import AuthFailure, BackendError
from electrix.schemas.auth import Role
from electrix.utils import rut_to_email


@pytest.fixture
def store(factory):
    return SessionStore(factory)


class TestSignIn:
    def test_sign_in_resolves_profile_role(self, store, supervisor):
        ctx = store.sign_in("11.111.111-1", "secret1")
        assert ctx.authenticated
        assert ctx.loading is False
        assert ctx.role == Role.SUPERVISOR
        assert ctx.profile.id == supervisor.id
        assert store.get(ctx.sid) is ctx

    def test_sign_in_accepts_unformatted_rut(self, store, worker):
        ctx = store.sign_in("222222222", "secret1")
        assert ctx.role == Role.WORKER

    def test_wrong_password_is_refused(self, store, worker):
        with pytest.raises(AuthFailure):
            store.sign_in("22.222.222-2", "nope")

    def test_missing_profile_is_refused(self, store, world):
        world.add_user("33.333.333-3", role="supervisor", with_profile=False)
        with pytest.raises(AuthFailure, match="Perfil no encontrado"):
            store.sign_in("33.333.333-3", "secret1")
        # Backend session is not left behind
        assert ("sign_out", "global") in world.calls

    def test_inactive_profile_is_refused(self, store, world):
        world.add_user("44.444.444-4", is_active=False)
        with pytest.raises(AuthFailure, match="Cuenta desactivada"):
            store.sign_in("44.444.444-4", "secret1")

    def test_role_comes_from_profile_not_auth_metadata(self, store, world):
        profile = world.add_user("55.555.555-5", role="trabajador")
        world.users[rut_to_email("55.555.555-5")]["metadata"]["role"] = "supervisor"
        ctx = store.sign_in("55.555.555-5", "secret1")
        assert ctx.profile.id == profile["id"]
        assert ctx.role == Role.WORKER

    def test_transport_error_releases_client(self, store, world, factory, worker):
        world.failures["sign_in"] = BackendError("timeout")
        with pytest.raises(BackendError, match="timeout"):
            store.sign_in("22.222.222-2", "secret1")
        assert factory.created[-1].listeners == []
        assert store._contexts == {}

    def test_error_after_sign_in_signs_the_session_out(self, store, world, factory, worker, monkeypatch):
        def failing_establish(self, session):
            raise BackendError("upstream timeout")

        monkeypatch.setattr(SessionContext, "establish", failing_establish)
        with pytest.raises(BackendError, match="upstream timeout"):
            store.sign_in("22.222.222-2", "secret1")
        backend = factory.created[-1]
        assert ("sign_out", "global") in world.calls
        assert backend.session is None
        assert backend.listeners == []
        assert store._contexts == {}


class TestSessionChanges:
    def test_token_refresh_keeps_identity_without_refetch(self, store, world, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        selects = len([c for c in world.calls if c == ("select", "profiles")])
        refreshed = ctx.backend._open_session(worker.id, ctx.user.email)
        ctx.backend.session = refreshed
        ctx.backend._emit("TOKEN_REFRESHED")
        assert ctx.session.access_token == refreshed.access_token
        assert len([c for c in world.calls if c == ("select", "profiles")]) == selects

    def test_sign_out_drops_context(self, store, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        store.sign_out(ctx.sid)
        assert store.get(ctx.sid) is None
        assert ctx.session is None
        assert ctx.profile is None
        assert ctx.backend.listeners == []

    def test_restore_from_tokens(self, factory, store, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        # A fresh store stands in for a restarted process
        other = SessionStore(factory)
        restored = other.restore(ctx.sid, ctx.session.access_token, ctx.session.refresh_token)
        assert restored is not None
        assert restored.sid == ctx.sid
        assert restored.profile.id == worker.id

    def test_restore_with_unknown_token_fails(self, store):
        assert store.restore("sid-1", "at", "rt-unknown") is None
        assert store.get("sid-1") is None


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestIdleEviction:
    @pytest.fixture
    def clock(self):
        return Clock()

    @pytest.fixture
    def store(self, factory, clock):
        return SessionStore(factory, idle_seconds=600, clock=clock)

    def test_idle_context_is_evicted_and_signed_out(self, store, clock, world, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        backend = ctx.backend
        clock.now += 601
        assert store.get(ctx.sid) is None
        assert ("sign_out", "local") in world.calls
        assert backend.session is None
        assert backend.listeners == []
        assert ctx.screens == {}

    def test_activity_keeps_context(self, store, clock, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        for _ in range(3):
            clock.now += 500
            assert store.get(ctx.sid) is ctx

    def test_lookup_of_one_viewer_evicts_others(self, store, clock, worker, supervisor):
        idle = store.sign_in("22.222.222-2", "secret1")
        clock.now += 400
        active = store.sign_in("11.111.111-1", "secret1")
        clock.now += 300
        assert store.get(active.sid) is active
        assert idle.sid not in store._contexts
        assert idle.session is None

    def test_failed_sign_out_still_evicts(self, store, clock, world, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        world.failures["sign_out"] = BackendError("network down")
        clock.now += 601
        assert store.get(ctx.sid) is None
        assert ctx.backend.listeners == []


class TestScreens:
    def test_open_screen_mounts_on_navigation_only(self, store, worker):
        ctx = store.sign_in("22.222.222-2", "secret1")
        loads = []

        class CountingScreen:
            mounted = False

            def mount(self):
                self.mounted = True
                loads.append(1)

            def unmount(self):
                self.mounted = False

        first = ctx.open_screen("a", CountingScreen)
        ctx.open_screen("a", CountingScreen)
        assert len(loads) == 1

        ctx.open_screen("b", CountingScreen)
        assert first.mounted is False
        ctx.open_screen("a", CountingScreen)
        assert len(loads) == 3
