from typing import Callable

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from marketplace.core.errors import Unauthenticated
from marketplace.core.permissions import ensure_role
from marketplace.core.security import decode_access_token
from marketplace.db.firebase_ops import FirestoreBaseModel, get_firestore_ops_instance
from marketplace.models.schemas import Caller, Role, User
from marketplace.services.applications import ApplicationService
from marketplace.services.channels import ChannelHub, get_channel_hub
from marketplace.services.messaging import MessagingService
from marketplace.services.profiles import FreelancerProfiles
from marketplace.services.projects import ProjectService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def resolve_caller(token: str | None, firestore_ops: FirestoreBaseModel) -> Caller:
    user_id = decode_access_token(token) if token else None
    if not user_id:
        raise Unauthenticated()
    user = firestore_ops.get("users", user_id, pydantic_model=User)
    if not user or not user.is_active:
        raise Unauthenticated("Authenticated user not found")
    return Caller(id=user.id, role=user.role)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
) -> Caller:
    return resolve_caller(token, firestore_ops)


def require_role(*roles: Role) -> Callable:
    async def dependency(caller: Caller = Depends(get_current_user)) -> Caller:
        ensure_role(caller, *roles)
        return caller

    return dependency


def get_profiles(firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance)) -> FreelancerProfiles:
    return FreelancerProfiles(firestore_ops)


def get_project_service(firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance)) -> ProjectService:
    return ProjectService(firestore_ops)


def get_application_service(firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance)) -> ApplicationService:
    return ApplicationService(firestore_ops)


def get_messaging_service(
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
    hub: ChannelHub = Depends(get_channel_hub),
) -> MessagingService:
    return MessagingService(firestore_ops, hub)
