"""
Issuing credentials for somebody other than the signed-in viewer.

Signing up through the viewer's own backend client would replace the
viewer's session with the new identity's, so every call here goes through
a throwaway client from ``BackendFactory.create_ephemeral()``.
"""
import structlog

from ..backend.service import AuthUser, BackendError, BackendFactory, BackendService
from ..schemas.auth import Profile, RegisterRequest, Role
from ..schemas.workflow import Client
from ..utils import rut_to_email


logger = structlog.get_logger(__name__)

# Postgres unique_violation
_DUPLICATE_KEY = "23505"


def _ensure_profile(backend: BackendService, values: dict) -> dict:
    try:
        return backend.insert("profiles", values)
    except BackendError as e:
        if e.code != _DUPLICATE_KEY:
            raise
    # Already created by the backend's signup trigger
    rows = backend.select("profiles", eq={"id": values["id"]})
    return rows[0] if rows else values


def issue_client_access(factory: BackendFactory, client: Client, password: str) -> AuthUser:
    """Create a ``cliente`` identity whose login handle is the client's RUT."""
    backend = factory.create_ephemeral()
    user = backend.sign_up(
        rut_to_email(client.rut),
        password,
        {"full_name": client.name, "rut": client.rut, "role": Role.CLIENT.value},
    )
    _ensure_profile(
        backend,
        {"id": user.id, "rut": client.rut, "full_name": client.name, "role": Role.CLIENT.value},
    )
    logger.info("client_access_issued", client_id=client.id, user_id=user.id)
    return user


def register_member(factory: BackendFactory, req: RegisterRequest) -> Profile:
    backend = factory.create_ephemeral()
    user = backend.sign_up(
        rut_to_email(req.rut),
        req.password,
        {"full_name": req.full_name, "rut": req.rut, "role": req.role.value},
    )
    row = _ensure_profile(
        backend,
        {"id": user.id, "rut": req.rut, "full_name": req.full_name, "role": req.role.value},
    )
    logger.info("member_registered", user_id=user.id, role=req.role.value)
    return Profile(**row)
