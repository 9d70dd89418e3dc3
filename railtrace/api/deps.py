"""FastAPI dependencies: collaborators, the lifecycle service and caller roles."""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from railtrace import config
from railtrace.clients.access import AccessService
from railtrace.clients.blob_store import BlobStore
from railtrace.clients.inference import InferenceClient
from railtrace.database import get_db
from railtrace.models.enums import Role
from railtrace.services.errors import AuthenticationError, PermissionDeniedError
from railtrace.services.lifecycle import MaterialLifecycle


@lru_cache
def get_access_service() -> AccessService:
    return AccessService(config.ACCESS_SERVICE_URL, config.STORAGE_TIMEOUT_SECONDS)


@lru_cache
def get_inference_client() -> InferenceClient:
    return InferenceClient(config.INFERENCE_SERVICE_URL, config.INFERENCE_TIMEOUT_SECONDS)


@lru_cache
def get_blob_store() -> BlobStore:
    return BlobStore(config.BLOB_STORE_URL, config.STORAGE_TIMEOUT_SECONDS)


def get_lifecycle(
    db: Session = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    blob_store: BlobStore = Depends(get_blob_store)
) -> MaterialLifecycle:
    return MaterialLifecycle(db, inference=inference, blob_store=blob_store)


@dataclass(frozen=True)
class Caller:
    role: Role
    user_id: Optional[str] = None  # informational, recorded in the audit trail


def get_caller(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    access: AccessService = Depends(get_access_service)
) -> Caller:
    """Resolve the bearer session token to a role through the Access Service."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError()
    token = authorization[len("bearer "):].strip()
    return Caller(role=access.resolve_role(token), user_id=x_user_id)


def require_role(action: str, *roles: Role):
    """Dependency factory: the caller's role must be one of ``roles``."""
    def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in roles:
            raise PermissionDeniedError(action, caller.role.value)
        return caller
    return dependency
