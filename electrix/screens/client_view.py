from typing import List, Optional

from ..schemas.auth import Role
from ..schemas.workflow import Client, HousingUnit, Project
from ..utils import format_rut
from .base import Screen


class ClientPortalScreen(Screen):
    """
    Read-only view of clients, their projects and unit progress.

    Client-role viewers only ask for the client whose RUT matches their own
    profile; the backend's row policies enforce the same restriction.
    """

    name = "client_view"

    def __init__(self, backend, profile):
        super().__init__(backend, profile)
        self.clients: List[Client] = []
        self.projects: List[Project] = []
        self.units: List[HousingUnit] = []
        self.selected_client_id: Optional[str] = None
        self.selected_project_id: Optional[str] = None

    @property
    def restricted(self) -> bool:
        return self.profile.role == Role.CLIENT

    @property
    def selected_client(self) -> Optional[Client]:
        return next((c for c in self.clients if c.id == self.selected_client_id), None)

    @property
    def selected_project(self) -> Optional[Project]:
        return next((p for p in self.projects if p.id == self.selected_project_id), None)

    def load(self) -> None:
        with self._lock:
            self.clients, self.projects, self.units = [], [], []
            self.selected_client_id = self.selected_project_id = None
        if self.restricted:
            rut = format_rut(self.profile.rut or "")
            if not rut:
                return
            call = lambda: self.backend.select("clients", eq={"rut": rut}, order="name")
        else:
            call = lambda: self.backend.select("clients", order="name")
        ok = self.run(
            "clients",
            "load_clients",
            call,
            lambda rows: setattr(self, "clients", [Client(**r) for r in rows]),
            "Error al cargar clientes",
        )
        if ok and len(self.clients) == 1:
            self.select_client(self.clients[0].id)

    def select_client(self, client_id: Optional[str]) -> None:
        with self._lock:
            if client_id and not any(c.id == client_id for c in self.clients):
                client_id = None
            self.selected_client_id = client_id or None
            self.selected_project_id = None
            self.projects, self.units = [], []
        if not self.selected_client_id:
            return

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

    def select_project(self, project_id: Optional[str]) -> None:
        with self._lock:
            if project_id and not any(p.id == project_id for p in self.projects):
                project_id = None
            self.selected_project_id = project_id or None
            self.units = []
        if not self.selected_project_id:
            return

        def apply(rows):
            if self.selected_project_id == project_id:
                self.units = [HousingUnit(**r) for r in rows]

        self.run(
            "units",
            "load_units",
            lambda: self.backend.select("housing_units", eq={"project_id": project_id}, order="created_at", ascending=True),
            apply,
            "Error al cargar viviendas",
        )
