from typing import Dict, List, Optional

from ..auth.credentials import issue_client_access
from ..backend.service import BackendFactory, BackendService
from ..config import settings
from ..schemas.auth import Profile
from ..schemas.workflow import CLIENT_TYPES, DEFAULT_PROJECT_STATUS, Client, HousingUnit, Project
from ..utils import format_rut
from .base import Screen
from .housing_unit import HousingUnitRow


class WorkflowScreen(Screen):
    """Client → Project → Housing unit drill-down with full editing."""

    name = "workflow"

    def __init__(self, backend: BackendService, profile: Profile, factory: BackendFactory):
        super().__init__(backend, profile)
        self.factory = factory
        self.clients: List[Client] = []
        self.projects: List[Project] = []
        self.units: List[HousingUnit] = []
        self.rows: Dict[str, HousingUnitRow] = {}
        self.selected_client_id: Optional[str] = None
        self.selected_project_id: Optional[str] = None

    @property
    def selected_client(self) -> Optional[Client]:
        return next((c for c in self.clients if c.id == self.selected_client_id), None)

    @property
    def selected_project(self) -> Optional[Project]:
        return next((p for p in self.projects if p.id == self.selected_project_id), None)

    # Loading

    def load(self) -> None:
        loaded = self.run(
            "clients",
            "load_clients",
            lambda: self.backend.select("clients", order="created_at", ascending=False),
            lambda rows: setattr(self, "clients", [Client(**r) for r in rows]),
            "Error al cargar clientes",
        )
        if not loaded:
            return
        client_id, project_id = self.selected_client_id, self.selected_project_id
        if not self.selected_client:
            self._clear_selection()
            return
        self._load_projects(client_id)
        if project_id and self.selected_project:
            self._load_units(project_id)
        else:
            self._clear_selection(keep_client=True)

    def _clear_selection(self, keep_client: bool = False) -> None:
        with self._lock:
            if not keep_client:
                self.selected_client_id = None
                self.projects = []
            self.selected_project_id = None
            self._set_units([])

    def _set_units(self, units: List[HousingUnit]) -> None:
        self.units = units
        self.rows = {u.id: HousingUnitRow(self, u, self.replace_unit) for u in units}

    def _load_projects(self, client_id: str) -> None:
        def apply(rows):
            if self.selected_client_id == client_id:
                self.projects = [Project(**r) for r in rows]

        self.run(
            "projects",
            "load_projects",
            lambda: self.backend.select("projects", eq={"client_id": client_id}, order="created_at", ascending=False),
            apply,
            "Error al cargar proyectos",
        )

    def _load_units(self, project_id: str) -> None:
        def apply(rows):
            if self.selected_project_id == project_id:
                self._set_units([HousingUnit(**r) for r in rows])

        self.run(
            "units",
            "load_units",
            lambda: self.backend.select("housing_units", eq={"project_id": project_id}, order="created_at", ascending=True),
            apply,
            "Error al cargar viviendas",
        )

    # Selection

    def select_client(self, client_id: Optional[str]) -> None:
        with self._lock:
            self.selected_client_id = client_id or None
            self.projects = []
            self._clear_selection(keep_client=True)
        if self.selected_client_id:
            self._load_projects(self.selected_client_id)

    def select_project(self, project_id: Optional[str]) -> None:
        with self._lock:
            self.selected_project_id = project_id or None
            self._set_units([])
        if self.selected_project_id:
            self._load_units(self.selected_project_id)

    # Clients

    def create_client(self, name: str, type: str, rut: Optional[str] = None) -> bool:
        name = (name or "").strip()
        if not name:
            return False
        values = {
            "name": name,
            "type": type if type in CLIENT_TYPES else CLIENT_TYPES[0],
            "rut": format_rut(rut) if rut else None,
            "created_by": self.profile.id,
        }
        created: List[Client] = []

        def apply(row):
            client = Client(**row)
            self.clients = [client, *self.clients]
            created.append(client)

        ok = self.run("clients", "create_client", lambda: self.backend.insert("clients", values), apply,
                      "Error al crear cliente")
        if ok:
            self.select_client(created[0].id)
        return ok

    def update_client(self, name: str, type: str, rut: Optional[str] = None) -> bool:
        name = (name or "").strip()
        client_id = self.selected_client_id
        if not name or not client_id:
            return False
        values = {
            "name": name,
            "type": type if type in CLIENT_TYPES else CLIENT_TYPES[0],
            "rut": format_rut(rut) if rut else None,
        }

        def apply(_):
            self.clients = [c.model_copy(update=values) if c.id == client_id else c for c in self.clients]

        return self.run(
            f"client:{client_id}",
            "update_client",
            lambda: self.backend.update("clients", values, eq={"id": client_id}),
            apply,
            "Error al actualizar cliente",
        )

    def delete_client(self, confirmed: bool) -> bool:
        client_id = self.selected_client_id
        if not client_id or not confirmed:
            return False

        def apply(_):
            self.clients = [c for c in self.clients if c.id != client_id]
            self._clear_selection()

        return self.run(
            f"client:{client_id}",
            "delete_client",
            lambda: self.backend.delete("clients", eq={"id": client_id}),
            apply,
            "Error al eliminar cliente",
        )

    def generate_access(self, password: str) -> bool:
        """Issue portal credentials for the selected client (supervisors only)."""
        client = self.selected_client
        if not self.is_supervisor or client is None:
            return False
        if not client.rut or not password or len(password) < settings.min_password_length:
            self.alert(
                "El cliente debe tener un RUT y la contraseña es obligatoria "
                f"(mínimo {settings.min_password_length} caracteres)."
            )
            return False
        ok = self.run(
            f"access:{client.id}",
            "generate_access",
            lambda: issue_client_access(self.factory, client, password),
            lambda _: None,
            "Error al crear credenciales",
        )
        if ok:
            self.alert(f"¡Credenciales creadas con éxito! Usuario: {client.rut}", level="info")
        return ok

    # Projects

    def create_project(self, name: str) -> bool:
        name = (name or "").strip()
        client_id = self.selected_client_id
        if not name or not client_id:
            return False
        values = {"client_id": client_id, "name": name, "status": DEFAULT_PROJECT_STATUS}
        created: List[Project] = []

        def apply(row):
            project = Project(**row)
            self.projects = [project, *self.projects]
            created.append(project)

        ok = self.run("projects", "create_project", lambda: self.backend.insert("projects", values), apply,
                      "Error al crear proyecto")
        if ok:
            self.select_project(created[0].id)
        return ok

    def update_project(self, name: str, status: Optional[str] = None) -> bool:
        name = (name or "").strip()
        project_id = self.selected_project_id
        if not name or not project_id:
            return False
        values = {"name": name}
        if status and status.strip():
            values["status"] = status.strip()

        def apply(_):
            self.projects = [p.model_copy(update=values) if p.id == project_id else p for p in self.projects]

        return self.run(
            f"project:{project_id}",
            "update_project",
            lambda: self.backend.update("projects", values, eq={"id": project_id}),
            apply,
            "Error al actualizar proyecto",
        )

    def delete_project(self, confirmed: bool) -> bool:
        """Delete the selected project; its units go with it through the backend's cascade."""
        project_id = self.selected_project_id
        if not project_id or not confirmed:
            return False

        def apply(_):
            self.projects = [p for p in self.projects if p.id != project_id]
            self.selected_project_id = None
            self._set_units([])

        return self.run(
            f"project:{project_id}",
            "delete_project",
            lambda: self.backend.delete("projects", eq={"id": project_id}),
            apply,
            "Error al eliminar proyecto",
        )

    # Housing units

    def create_unit(self, name: str) -> bool:
        name = (name or "").strip()
        project_id = self.selected_project_id
        if not name or not project_id:
            return False
        values = {"project_id": project_id, "name": name, "status": {}}

        def apply(row):
            # Units are listed oldest first
            self._set_units([*self.units, HousingUnit(**row)])

        return self.run("units", "create_unit", lambda: self.backend.insert("housing_units", values), apply,
                        "Error al crear vivienda")

    def delete_unit(self, unit_id: str, confirmed: bool) -> bool:
        if not confirmed or unit_id not in self.rows:
            return False

        def apply(_):
            self._set_units([u for u in self.units if u.id != unit_id])

        return self.run(
            f"unit:{unit_id}",
            "delete_unit",
            lambda: self.backend.delete("housing_units", eq={"id": unit_id}),
            apply,
            "Error al eliminar vivienda",
        )

    def replace_unit(self, unit: HousingUnit) -> None:
        with self._lock:
            self.units = [unit if u.id == unit.id else u for u in self.units]

    def row(self, unit_id: str) -> Optional[HousingUnitRow]:
        return self.rows.get(unit_id)
