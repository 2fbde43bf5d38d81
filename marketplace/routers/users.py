from fastapi import APIRouter, Depends

from marketplace.core.deps import get_current_user, get_profiles, require_role
from marketplace.db.firebase_ops import FirestoreBaseModel, get_firestore_ops_instance
from marketplace.models.schemas import Caller, FreelancerProfile, FreelancerProfileUpdate, Role, User, UserProfile
from marketplace.services.profiles import FreelancerProfiles

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/profile", response_model=UserProfile)
async def get_my_profile(
    caller: Caller = Depends(get_current_user),
    profiles: FreelancerProfiles = Depends(get_profiles),
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
):
    user = firestore_ops.get("users", caller.id, pydantic_model=User)
    if caller.role == Role.FREELANCER:
        return UserProfile(user=user, freelancer_profile=profiles.get_profile(caller.id))
    return UserProfile(user=user)


@router.put("/profile", response_model=FreelancerProfile)
async def update_my_profile(
    update: FreelancerProfileUpdate,
    caller: Caller = Depends(require_role(Role.FREELANCER)),
    profiles: FreelancerProfiles = Depends(get_profiles),
):
    return profiles.set_profile(caller.id, update)


@router.get("/freelancer/{user_id}", response_model=FreelancerProfile)
async def get_freelancer_profile(
    user_id: str,
    caller: Caller = Depends(get_current_user),
    profiles: FreelancerProfiles = Depends(get_profiles),
):
    return profiles.get_profile(user_id)
