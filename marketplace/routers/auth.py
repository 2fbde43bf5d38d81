import logging

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from marketplace.core.deps import get_current_user
from marketplace.core.errors import Conflict, Forbidden, Unauthenticated
from marketplace.core.security import Token, create_access_token, get_password_hash, verify_password
from marketplace.db.firebase_ops import FirestoreBaseModel, get_firestore_ops_instance
from marketplace.models.schemas import Caller, Role, User, UserCreate
from marketplace.services.profiles import FreelancerProfiles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_in: UserCreate,
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
):
    if user_in.role == Role.ADMIN:
        raise Forbidden("Admin accounts cannot be self-registered")
    if firestore_ops.query("users", "email", "==", user_in.email):
        raise Conflict("Email already registered")
    if firestore_ops.query("users", "username", "==", user_in.username):
        raise Conflict("Username already taken")

    user = User(**user_in.model_dump(exclude={"password"}))

    # The stored record carries the hash; the response model never does
    user_record = user.model_dump()
    user_record["hashed_password"] = get_password_hash(user_in.password)
    firestore_ops.save("users", user_record, document_id=user.id)

    if user.role == Role.FREELANCER:
        FreelancerProfiles(firestore_ops).create_profile(user.id)

    logger.info("User registered: user=%s, role=%s", user.id, user.role)
    return user


@router.post("/login", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
):
    # The form's username field accepts either the username or the email
    users_found = firestore_ops.query("users", "username", "==", form_data.username)
    if not users_found:
        users_found = firestore_ops.query("users", "email", "==", form_data.username)
    if not users_found:
        raise Unauthenticated("Incorrect username or password")

    user_data = users_found[0]
    if not verify_password(form_data.password, user_data.get("hashed_password", "")):
        raise Unauthenticated("Incorrect username or password")

    access_token = create_access_token(data={"sub": user_data["id"]})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=User)
async def read_users_me(
    caller: Caller = Depends(get_current_user),
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
):
    return firestore_ops.get("users", caller.id, pydantic_model=User)
