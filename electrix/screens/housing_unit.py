import uuid
from typing import Callable, Dict, Optional

import structlog
from slugify import slugify

from ..backend.service import BackendError
from ..config import settings
from ..schemas.workflow import STATUS_OPTIONS, HousingUnit
from .base import Screen


logger = structlog.get_logger(__name__)

TABS = ("comments", "images")


class HousingUnitRow:
    """
    Checklist, comments and photo gallery of one housing unit.

    Remote calls run through the owning screen so they share its request
    states, alert and mount generation. Every committed change is reported
    through ``on_update`` so the screen's unit list stays in step.
    """

    def __init__(self, screen: Screen, unit: HousingUnit, on_update: Callable[[HousingUnit], None]):
        self.screen = screen
        self.unit = unit
        self.on_update = on_update
        self.active_tab: Optional[str] = None
        self.expanded = True
        # Checklist values sent but not yet confirmed
        self.pending: Dict[str, bool] = {}

    @property
    def key(self) -> str:
        return f"unit:{self.unit.id}"

    @property
    def status(self) -> Dict[str, bool]:
        return {**self.unit.status, **self.pending}

    def select_tab(self, tab: Optional[str]) -> None:
        if tab not in TABS or tab == self.active_tab:
            self.active_tab = None
        else:
            self.active_tab = tab

    def toggle_expanded(self) -> None:
        self.expanded = not self.expanded

    def _commit(self, **changes) -> None:
        self.unit = self.unit.model_copy(update=changes)
        self.on_update(self.unit)

    def toggle_status(self, stage: str) -> bool:
        if stage not in STATUS_OPTIONS:
            raise ValueError(f"Unknown stage: {stage}")
        new_status = {**self.unit.status, stage: not self.unit.status.get(stage, False)}
        issued = []

        def call():
            # Only runs when no other toggle of this unit is in flight
            issued.append(stage)
            self.pending[stage] = new_status[stage]
            return self.screen.backend.update("housing_units", {"status": new_status}, eq={"id": self.unit.id})

        try:
            return self.screen.run(
                f"{self.key}:status",
                "toggle_status",
                call,
                lambda _: self._commit(status=new_status),
                "Error al actualizar el estado",
            )
        finally:
            # Committed or rolled back, this call's overlay is no longer needed
            if issued:
                self.pending.pop(stage, None)

    def save_comment(self, comment: str) -> bool:
        comment = comment or ""

        def apply(_):
            self._commit(comments=comment)
            self.active_tab = None

        return self.screen.run(
            f"{self.key}:comments",
            "save_comment",
            lambda: self.screen.backend.update("housing_units", {"comments": comment}, eq={"id": self.unit.id}),
            apply,
            "Error al guardar el comentario",
        )

    def rename(self, name: str) -> bool:
        name = (name or "").strip()
        if not name or name == self.unit.name:
            return False
        return self.screen.run(
            f"{self.key}:name",
            "rename_unit",
            lambda: self.screen.backend.update("housing_units", {"name": name}, eq={"id": self.unit.id}),
            lambda _: self._commit(name=name),
            "Error al actualizar el nombre",
        )

    def upload_image(self, filename: str, content: bytes, content_type: str) -> bool:
        """
        Store the file, then link its public URL to the unit.

        When linking fails the stored object is removed again so no
        unreferenced file is left behind.
        """
        if not content:
            return False
        ext = slugify(filename.rsplit(".", 1)[-1]) if "." in (filename or "") else ""
        path = f"{self.unit.id}-{uuid.uuid4().hex}.{ext or 'bin'}"
        bucket = settings.images_bucket
        backend = self.screen.backend

        def call():
            backend.upload(bucket, path, content, content_type or "application/octet-stream")
            url = backend.public_url(bucket, path)
            images = [*self.unit.images, url]
            try:
                backend.update("housing_units", {"images": images}, eq={"id": self.unit.id})
            except BackendError:
                self._discard_object(path, "upload_compensation_failed")
                raise
            return images

        return self.screen.run(
            f"{self.key}:images",
            "upload_image",
            call,
            lambda images: self._commit(images=images),
            "Error al subir imagen",
        )

    def delete_image(self, url: str, confirmed: bool) -> bool:
        if not confirmed or url not in self.unit.images:
            return False
        images = [img for img in self.unit.images if img != url]
        ok = self.screen.run(
            f"{self.key}:images",
            "delete_image",
            lambda: self.screen.backend.update("housing_units", {"images": images}, eq={"id": self.unit.id}),
            lambda _: self._commit(images=images),
            "Error al eliminar la imagen",
        )
        if ok:
            path = object_path(url, settings.images_bucket)
            if path:
                self._discard_object(path)
        return ok

    def _discard_object(self, path: str, failure_event: str = "image_object_remove_failed") -> None:
        try:
            self.screen.backend.remove(settings.images_bucket, [path])
        except BackendError as e:
            logger.error(failure_event, unit_id=self.unit.id, path=path, error=e.message)


def object_path(public_url: str, bucket: str) -> Optional[str]:
    """Storage path of an object from its public URL, or None if it is not in ``bucket``."""
    marker = f"/object/public/{bucket}/"
    if marker not in public_url:
        return None
    path = public_url.split(marker, 1)[1].split("?", 1)[0]
    return path or None
