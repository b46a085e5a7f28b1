import jwt
import pytest

from electrix.auth.security import (
    Area,
    Outcome,
    create_session_token,
    decode_session_token,
    home_for,
    resolve_navigation,
)
from electrix.auth.session import SessionStore
from electrix.schemas.auth import Role


@pytest.fixture
def store(factory):
    return SessionStore(factory)


@pytest.fixture
def client_ctx(store, world):
    world.add_user("66.666.666-6", role="cliente")
    return store.sign_in("66.666.666-6", "secret1")


@pytest.fixture
def worker_ctx(store, worker):
    return store.sign_in("22.222.222-2", "secret1")


class TestResolveNavigation:
    def test_unauthenticated_goes_to_login(self):
        for area in (Area.STAFF, Area.PORTAL, Area.INDEX):
            nav = resolve_navigation(None, area)
            assert nav.outcome == Outcome.REDIRECT
            assert nav.location == "/login"

    def test_login_is_public(self):
        assert resolve_navigation(None, Area.PUBLIC).outcome == Outcome.ALLOW

    def test_authenticated_visitor_leaves_login(self, worker_ctx):
        nav = resolve_navigation(worker_ctx, Area.PUBLIC)
        assert (nav.outcome, nav.location) == (Outcome.REDIRECT, "/")

    def test_loading_blocks_decision(self, worker_ctx):
        worker_ctx.loading = True
        assert resolve_navigation(worker_ctx, Area.STAFF).outcome == Outcome.LOADING

    def test_client_is_sent_to_portal_from_staff_routes(self, client_ctx):
        nav = resolve_navigation(client_ctx, Area.STAFF)
        assert (nav.outcome, nav.location) == (Outcome.REDIRECT, "/client-view")
        assert resolve_navigation(client_ctx, Area.PORTAL).outcome == Outcome.ALLOW

    def test_staff_may_open_portal(self, worker_ctx):
        assert resolve_navigation(worker_ctx, Area.STAFF).outcome == Outcome.ALLOW
        assert resolve_navigation(worker_ctx, Area.PORTAL).outcome == Outcome.ALLOW

    def test_index_routes_by_role(self, worker_ctx, client_ctx):
        assert resolve_navigation(worker_ctx, Area.INDEX).location == "/workflow"
        assert resolve_navigation(client_ctx, Area.INDEX).location == "/client-view"

    def test_home_for(self):
        assert home_for(Role.CLIENT) == "/client-view"
        assert home_for(Role.SUPERVISOR) == "/workflow"
        assert home_for(Role.WORKER) == "/workflow"


class TestSessionToken:
    def test_round_trip(self, worker_ctx):
        claims = decode_session_token(create_session_token(worker_ctx))
        assert claims["sid"] == worker_ctx.sid
        assert claims["rt"] == worker_ctx.session.refresh_token

    def test_foreign_signature_is_rejected(self, worker_ctx):
        forged = jwt.encode({"sid": worker_ctx.sid, "at": "a", "rt": "r"}, "not-the-secret", algorithm="HS256")
        assert decode_session_token(forged) is None
        assert decode_session_token("garbage") is None
