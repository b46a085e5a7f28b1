import pytest

from electrix.schemas.auth import Profile
from electrix.screens.client_view import ClientPortalScreen


@pytest.fixture
def data(world):
    andes = world.add_row("clients", name="Constructora Andes", type="Constructora", rut="76.543.210-K")
    pacifico = world.add_row("clients", name="Inmobiliaria Pacífico", type="Empresa", rut="77.777.777-7")
    loteo = world.add_row("projects", client_id=andes["id"], name="Loteo Sur", status="En curso")
    world.add_row("projects", client_id=pacifico["id"], name="Torre Mar", status="En curso")
    world.add_row("housing_units", project_id=loteo["id"], name="Casa 1",
                  status={"TE1": True, "Empalme": False, "Factibilidad": True})
    world.add_row("housing_units", project_id=loteo["id"], name="Casa 2", status={})
    return {"andes": andes, "pacifico": pacifico, "loteo": loteo}


def _client_profile(world, rut):
    return Profile(**world.add_user(rut, role="cliente", full_name="Cliente"))


class TestClientRole:
    def test_sees_only_matching_client_and_auto_selects(self, world, backend, data):
        profile = _client_profile(world, "76543210k")
        s = ClientPortalScreen(backend, profile)
        s.mount()
        assert [c.name for c in s.clients] == ["Constructora Andes"]
        assert s.selected_client_id == data["andes"]["id"]
        assert [p.name for p in s.projects] == ["Loteo Sur"]

    def test_completed_stages_only(self, world, backend, data):
        s = ClientPortalScreen(backend, _client_profile(world, "76.543.210-K"))
        s.mount()
        s.select_project(data["loteo"]["id"])
        casa1, casa2 = s.units
        assert casa1.completed_stages() == ["TE1", "Factibilidad"]
        assert casa2.completed_stages() == []

    def test_no_matching_client(self, world, backend, data):
        s = ClientPortalScreen(backend, _client_profile(world, "99.999.999-9"))
        s.mount()
        assert s.clients == []
        assert s.projects == []
        assert s.units == []
        assert s.pop_notice() is None

    def test_without_rut_no_remote_call(self, world, backend, data):
        profile = Profile(id="anon", role="cliente", rut=None)
        s = ClientPortalScreen(backend, profile)
        calls = len(world.calls)
        s.mount()
        assert s.clients == []
        assert len(world.calls) == calls

    def test_cannot_select_foreign_client(self, world, backend, data):
        s = ClientPortalScreen(backend, _client_profile(world, "76.543.210-K"))
        s.mount()
        s.select_client(data["pacifico"]["id"])
        assert s.selected_client_id is None
        assert s.projects == []


class TestStaff:
    def test_sees_all_clients_by_name(self, backend, supervisor, data):
        s = ClientPortalScreen(backend, supervisor)
        s.mount()
        assert [c.name for c in s.clients] == ["Constructora Andes", "Inmobiliaria Pacífico"]
        assert s.selected_client_id is None

    def test_drill_down(self, backend, worker, data):
        s = ClientPortalScreen(backend, worker)
        s.mount()
        s.select_client(data["pacifico"]["id"])
        assert [p.name for p in s.projects] == ["Torre Mar"]
        s.select_client(data["andes"]["id"])
        s.select_project(data["loteo"]["id"])
        assert [u.name for u in s.units] == ["Casa 1", "Casa 2"]
