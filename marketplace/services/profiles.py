import logging
from typing import Callable, List, Optional, TypeVar, Union

from marketplace.core.errors import NotFound
from marketplace.db.firebase_ops import FirestoreBaseModel, FirestoreTransaction
from marketplace.models.schemas import FreelancerProfile, FreelancerProfileUpdate

logger = logging.getLogger(__name__)

PROFILES = "freelancer_profiles"

T = TypeVar("T")


def normalize_skills(skills: Union[List[str], str, None]) -> List[str]:
    """Accept a list or a comma-delimited string; trim entries and drop empties."""
    if skills is None:
        return []
    if isinstance(skills, str):
        skills = skills.split(",")
    return [skill.strip() for skill in skills if skill and skill.strip()]


class FreelancerProfiles:
    """
    Freelancer profile records keyed by user id.

    The mutators take an optional open transaction so the bookkeeping commits
    together with the lifecycle change that caused it.
    """

    def __init__(self, firestore_ops: FirestoreBaseModel):
        self.firestore_ops = firestore_ops

    def _write(self, tx: Optional[FirestoreTransaction], work: Callable[[FirestoreTransaction], T]) -> T:
        if tx is not None:
            return work(tx)
        return self.firestore_ops.run_transaction(work)

    def create_profile(self, user_id: str) -> FreelancerProfile:
        profile = FreelancerProfile(user_id=user_id)
        self.firestore_ops.save(PROFILES, profile, document_id=user_id)
        return profile

    def get_profile(self, user_id: str) -> FreelancerProfile:
        profile = self.firestore_ops.get(PROFILES, user_id, pydantic_model=FreelancerProfile)
        if not profile:
            raise NotFound("Freelancer not found")
        return profile

    def set_profile(self, user_id: str, update: FreelancerProfileUpdate) -> FreelancerProfile:
        profile = self.get_profile(user_id)
        changes = {}
        if "bio" in update.model_fields_set:
            changes["bio"] = update.bio or ""
        if "skills" in update.model_fields_set:
            changes["skills"] = normalize_skills(update.skills)
        if changes:
            self.firestore_ops.update(PROFILES, user_id, changes)
        return profile.model_copy(update=changes)

    def increment_funds(self, user_id: str, amount: float, tx: Optional[FirestoreTransaction] = None) -> None:
        self._write(tx, lambda t: t.increment(PROFILES, user_id, "funds", amount))
        logger.info("Credited %s to freelancer %s", amount, user_id)

    def increment_completed(self, user_id: str, tx: Optional[FirestoreTransaction] = None) -> None:
        self._write(tx, lambda t: t.increment(PROFILES, user_id, "completed_projects", 1))

    def append_project(self, user_id: str, project_id: str, tx: Optional[FirestoreTransaction] = None) -> None:
        self._write(tx, lambda t: t.append(PROFILES, user_id, "projects", project_id))

    def append_application(self, user_id: str, application_id: str, tx: Optional[FirestoreTransaction] = None) -> None:
        self._write(tx, lambda t: t.append(PROFILES, user_id, "applications", application_id))
