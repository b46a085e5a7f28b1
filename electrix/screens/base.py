"""
Shared machinery of the screen controllers.

A screen keeps the viewer's copy of the rows it shows. Every remote call
runs through ``Screen.run``, which tracks a request state per entity key,
turns ``BackendError`` and rows the models reject into a logged alert and
drops results that arrive after the screen was unmounted or mounted again.
"""
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import ValidationError

from ..backend.service import BackendError, BackendService
from ..schemas.auth import Profile, Role


logger = structlog.get_logger(__name__)


class RequestState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"


@dataclass
class Notice:
    message: str
    level: str = "error"  # error | info


class Screen:
    name = "screen"

    def __init__(self, backend: BackendService, profile: Profile):
        self.backend = backend
        self.profile = profile
        self.requests: Dict[str, RequestState] = {}
        self.notice: Optional[Notice] = None
        self.mounted = False
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def is_supervisor(self) -> bool:
        return self.profile.role == Role.SUPERVISOR

    def mount(self) -> None:
        with self._lock:
            self._generation += 1
            self.mounted = True
            self.requests = {}
        self.load()

    def unmount(self) -> None:
        with self._lock:
            self._generation += 1
            self.mounted = False

    def load(self) -> None:
        raise NotImplementedError

    def state(self, key: str) -> RequestState:
        return self.requests.get(key, RequestState.IDLE)

    def is_pending(self, key: str) -> bool:
        return self.state(key) == RequestState.PENDING

    def alert(self, message: str, level: str = "error") -> None:
        with self._lock:
            self.notice = Notice(message, level)

    def pop_notice(self) -> Optional[Notice]:
        with self._lock:
            notice, self.notice = self.notice, None
        return notice

    def run(
        self,
        key: str,
        action: str,
        call: Callable[[], Any],
        apply: Callable[[Any], None],
        failure: str,
    ) -> bool:
        """
        Issue ``call`` for entity ``key`` and hand its result to ``apply``.

        Returns True when the result was applied. A key that is already
        pending is not called again.
        """
        with self._lock:
            if self.is_pending(key):
                logger.info("screen_action_skipped", screen=self.name, action=action, key=key)
                return False
            self.requests[key] = RequestState.PENDING
            generation = self._generation
        try:
            result = call()
        except BackendError as e:
            logger.error("screen_action_failed", screen=self.name, action=action, key=key, error=e.message)
            with self._lock:
                if generation == self._generation:
                    self.requests[key] = RequestState.ERROR
                    self.notice = Notice(f"{failure}: {e.message}")
            return False
        with self._lock:
            if generation != self._generation:
                logger.info("stale_response_dropped", screen=self.name, action=action, key=key)
                return False
            try:
                apply(result)
            except ValidationError as e:
                # A row the backend accepted but the models reject
                logger.error("screen_row_invalid", screen=self.name, action=action, key=key,
                             errors=e.error_count())
                self.requests[key] = RequestState.ERROR
                self.notice = Notice(f"{failure}: datos inválidos recibidos del servidor")
                return False
            self.requests[key] = RequestState.IDLE
        return True
