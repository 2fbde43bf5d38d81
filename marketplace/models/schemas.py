import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union
from uuid import NAMESPACE_URL, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, EmailStr, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def time_ordered_id() -> str:
    # Lexicographic order follows creation order; the suffix breaks ties.
    return f"{time.time_ns():020d}-{uuid4().hex[:8]}"


def application_key(project_id: str, freelancer_id: str) -> str:
    """Deterministic application id for a (project, freelancer) pair."""
    return str(uuid5(NAMESPACE_URL, f"marketplace:application:{project_id}:{freelancer_id}"))


class Role(str, Enum):
    FREELANCER = "freelancer"
    CLIENT = "client"
    ADMIN = "admin"


class ProjectStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class StoredModel(BaseModel):
    """Base for records persisted in Firestore: enums are stored as plain strings."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class Caller(BaseModel):
    """The authenticated identity an operation runs on behalf of."""

    id: str
    role: Role


# --- Users & profiles ---

class UserBase(BaseModel):
    username: str
    email: EmailStr
    role: Role = Role.FREELANCER


class UserCreate(UserBase):
    password: str


class User(StoredModel, UserBase):
    id: str = Field(default_factory=new_id)
    registration_date: datetime = Field(default_factory=utcnow)
    is_active: bool = True


class FreelancerProfile(StoredModel):
    user_id: str
    bio: str = ""
    skills: List[str] = []
    funds: float = 0
    completed_projects: int = 0
    projects: List[str] = []
    applications: List[str] = []


class FreelancerProfileUpdate(BaseModel):
    bio: Optional[str] = None
    skills: Optional[Union[List[str], str]] = None


class UserProfile(BaseModel):
    user: User
    freelancer_profile: Optional[FreelancerProfile] = None


# --- Projects ---

class Bid(BaseModel):
    freelancer_id: str
    amount: float


class Submission(BaseModel):
    link: str
    note: str = ""
    submitted_at: datetime = Field(default_factory=utcnow)


class ProjectCreate(BaseModel):
    title: str
    description: str
    budget: float
    # Either a list or a single comma-delimited string
    skills: Union[List[str], str, None] = None
    deadline: Optional[datetime] = None


class Project(StoredModel):
    id: str = Field(default_factory=new_id)
    client_id: str
    title: str
    description: str
    budget: float
    skills: List[str] = []
    status: ProjectStatus = ProjectStatus.OPEN
    freelancer_id: Optional[str] = None
    bids: List[Bid] = []
    deadline: Optional[datetime] = None
    submission: Optional[Submission] = None
    posted_at: datetime = Field(default_factory=utcnow)


class ProjectPatch(BaseModel):
    """
    Partial update. Only fields present in the payload are applied, including
    ones explicitly set to an empty value; absent fields stay unchanged.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    budget: Optional[float] = None
    skills: Union[List[str], str, None] = None
    deadline: Optional[datetime] = None
    status: Optional[ProjectStatus] = None

    def provided(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


class WorkSubmissionCreate(BaseModel):
    link: str
    note: str = ""


class ProjectStats(BaseModel):
    total: int
    open: int
    in_progress: int
    completed: int


# --- Applications ---

class ApplicationCreate(BaseModel):
    project_id: str
    proposal: str
    bid_amount: float


class Application(StoredModel):
    id: str
    project_id: str
    client_id: str
    freelancer_id: str
    proposal: str
    bid_amount: float
    # Snapshot of the project when the application was made
    title: str
    description: str
    skills: List[str] = []
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: datetime = Field(default_factory=utcnow)


class ApplicationStats(BaseModel):
    total: int
    pending: int
    accepted: int
    rejected: int


# --- Messaging ---

class MessageCreate(BaseModel):
    project_id: str
    text: str


class Message(StoredModel):
    id: str = Field(default_factory=time_ordered_id)
    project_id: str
    sender_id: str
    sender_role: Role
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
