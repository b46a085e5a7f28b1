from typing import List

from ..config import settings
from ..schemas.auth import Profile, Role
from .base import Screen


def filter_members(members: List[Profile], term: str) -> List[Profile]:
    """Case-insensitive substring match over name, RUT and role."""
    term = (term or "").strip().lower()
    if not term:
        return list(members)
    return [
        m for m in members
        if term in (m.full_name or "").lower()
        or term in (m.rut or "").lower()
        or term in m.role.value.lower()
    ]


class TeamScreen(Screen):
    name = "team"

    def __init__(self, backend, profile):
        super().__init__(backend, profile)
        self.members: List[Profile] = []

    def load(self) -> None:
        self.run(
            "members",
            "load_members",
            lambda: self.backend.select("profiles", order="created_at", ascending=False),
            lambda rows: setattr(self, "members", [Profile(**r) for r in rows]),
            "Error al cargar el equipo",
        )

    def search(self, term: str) -> List[Profile]:
        return filter_members(self.members, term)

    def _can_manage(self, user_id: str) -> bool:
        # Supervisors manage everyone but themselves
        return self.is_supervisor and bool(user_id) and user_id != self.profile.id

    def _replace(self, user_id: str, **changes) -> None:
        self.members = [m.model_copy(update=changes) if m.id == user_id else m for m in self.members]

    def add_member(self, member: Profile) -> None:
        with self._lock:
            self.members = [member, *[m for m in self.members if m.id != member.id]]

    def change_role(self, user_id: str, role: Role) -> bool:
        if not self._can_manage(user_id):
            return False
        return self.run(
            f"member:{user_id}",
            "change_role",
            lambda: self.backend.update("profiles", {"role": role.value}, eq={"id": user_id}),
            lambda _: self._replace(user_id, role=role),
            "Error al actualizar rol",
        )

    def set_active(self, user_id: str, active: bool, confirmed: bool) -> bool:
        if not confirmed or not self._can_manage(user_id):
            return False
        return self.run(
            f"member:{user_id}",
            "set_active",
            lambda: self.backend.update("profiles", {"is_active": active}, eq={"id": user_id}),
            lambda _: self._replace(user_id, is_active=active),
            "Error al actualizar estado",
        )

    def delete_member(self, user_id: str, confirmed: bool) -> bool:
        if not confirmed or not self._can_manage(user_id):
            return False
        return self.run(
            f"member:{user_id}",
            "delete_member",
            lambda: self.backend.delete("profiles", eq={"id": user_id}),
            lambda _: setattr(self, "members", [m for m in self.members if m.id != user_id]),
            "Error al eliminar usuario",
        )

    def reset_password(self, user_id: str, new_password: str) -> bool:
        if not self.is_supervisor or not user_id:
            return False
        if not new_password or len(new_password) < settings.min_password_length:
            self.alert(f"La contraseña debe tener al menos {settings.min_password_length} caracteres")
            return False
        ok = self.run(
            f"password:{user_id}",
            "reset_password",
            lambda: self.backend.rpc("admin_reset_password", {"target_user_id": user_id, "new_password": new_password}),
            lambda _: None,
            "Error al restablecer contraseña",
        )
        if ok:
            self.alert("Contraseña actualizada correctamente.", level="info")
        return ok
