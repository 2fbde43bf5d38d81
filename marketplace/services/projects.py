"""
Project lifecycle.

Status moves along VALID_TRANSITIONS only:

    open -> in-progress        (an application is accepted)
    in-progress -> completed   (the assigned freelancer submits work)
    in-progress -> open        (the assigned freelancer opts out)

``completed`` is terminal. ``freelancer_id`` is set exactly when the status is
not ``open``; every write below keeps the two fields in step.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from marketplace.core.errors import Forbidden, InvalidState, NotFound, ValidationError
from marketplace.core.permissions import can_manage_project, ensure_role
from marketplace.db.firebase_ops import FirestoreBaseModel, FirestoreTransaction
from marketplace.models.schemas import (
    Caller,
    Project,
    ProjectCreate,
    ProjectPatch,
    ProjectStats,
    ProjectStatus,
    Role,
    Submission,
)
from marketplace.services.profiles import FreelancerProfiles, normalize_skills

logger = logging.getLogger(__name__)

PROJECTS = "projects"
APPLICATIONS = "applications"

VALID_TRANSITIONS = {
    ProjectStatus.OPEN: [ProjectStatus.IN_PROGRESS],
    ProjectStatus.IN_PROGRESS: [ProjectStatus.COMPLETED, ProjectStatus.OPEN],
    ProjectStatus.COMPLETED: [],
}


def can_transition(current: str, new: str) -> Tuple[bool, str]:
    current_status, new_status = ProjectStatus(current), ProjectStatus(new)
    if new_status in VALID_TRANSITIONS[current_status]:
        return True, ""
    return False, f"Cannot move project from '{current_status.value}' to '{new_status.value}'"


def transition(project: Project, new_status: ProjectStatus, actor: Caller) -> Dict[str, Any]:
    """
    Validate a status change and return the field updates for it.

    Raises InvalidState when the move is not in VALID_TRANSITIONS.
    """
    allowed, reason = can_transition(project.status, new_status)
    if not allowed:
        logger.warning(
            "Invalid project transition: project=%s, from=%s, to=%s, actor=%s. Reason: %s",
            project.id, project.status, new_status.value, actor.id, reason,
        )
        raise InvalidState(reason)

    logger.info(
        "Project transition: project=%s, from=%s, to=%s, actor=%s",
        project.id, project.status, new_status.value, actor.id,
    )
    return {"status": new_status.value}


def is_terminal_status(status: str) -> bool:
    return not VALID_TRANSITIONS[ProjectStatus(status)]


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def require_positive(value: Optional[float], field: str) -> float:
    if value is None or isinstance(value, bool) or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{field} must be a positive number")
    return value


def merged(project: Project, updates: Dict[str, Any]) -> Project:
    return Project(**{**project.model_dump(), **updates})


def load_project(tx: FirestoreTransaction, project_id: str) -> Project:
    project = tx.get(PROJECTS, project_id, pydantic_model=Project)
    if not project:
        raise NotFound("Project not found")
    return project


def _newest_first(projects: List[Project]) -> List[Project]:
    return sorted(projects, key=lambda project: project.posted_at, reverse=True)


class ProjectService:
    def __init__(self, firestore_ops: FirestoreBaseModel, profiles: Optional[FreelancerProfiles] = None):
        self.firestore_ops = firestore_ops
        self.profiles = profiles or FreelancerProfiles(firestore_ops)

    # --- reads ---

    def get_project(self, project_id: str) -> Project:
        project = self.firestore_ops.get(PROJECTS, project_id, pydantic_model=Project)
        if not project:
            raise NotFound("Project not found")
        return project

    def list_projects(self, skills: Optional[str] = None, status: Optional[str] = None) -> List[Project]:
        """Open listing. ``skills`` is a comma list; a project matches if it shares any of them."""
        if status:
            try:
                status = ProjectStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown project status '{status}'")
            projects = self.firestore_ops.query(PROJECTS, "status", "==", status, pydantic_model=Project)
        else:
            projects = self.firestore_ops.get_all(PROJECTS, pydantic_model=Project)

        wanted = set(normalize_skills(skills))
        if wanted:
            projects = [project for project in projects if wanted.intersection(project.skills)]
        return _newest_first(projects)

    def list_client_projects(self, caller: Caller) -> List[Project]:
        ensure_role(caller, Role.CLIENT)
        return _newest_first(self.firestore_ops.query(PROJECTS, "client_id", "==", caller.id, pydantic_model=Project))

    def list_freelancer_projects(self, caller: Caller) -> List[Project]:
        return _newest_first(self.firestore_ops.query(PROJECTS, "freelancer_id", "==", caller.id, pydantic_model=Project))

    def list_all(self, caller: Caller) -> List[Project]:
        ensure_role(caller, Role.ADMIN)
        return _newest_first(self.firestore_ops.get_all(PROJECTS, pydantic_model=Project))

    def stats(self, caller: Caller) -> ProjectStats:
        ensure_role(caller, Role.ADMIN)
        count = self.firestore_ops.count
        return ProjectStats(
            total=count(PROJECTS),
            open=count(PROJECTS, "status", ProjectStatus.OPEN.value),
            in_progress=count(PROJECTS, "status", ProjectStatus.IN_PROGRESS.value),
            completed=count(PROJECTS, "status", ProjectStatus.COMPLETED.value),
        )

    # --- mutations ---

    def create_project(self, caller: Caller, project_in: ProjectCreate) -> Project:
        ensure_role(caller, Role.CLIENT, detail="Only clients can create projects")
        project = Project(
            client_id=caller.id,
            title=require_text(project_in.title, "title"),
            description=require_text(project_in.description, "description"),
            budget=require_positive(project_in.budget, "budget"),
            skills=normalize_skills(project_in.skills),
            deadline=project_in.deadline,
        )
        self.firestore_ops.save(PROJECTS, project, document_id=project.id)
        logger.info("Project created: project=%s, client=%s", project.id, caller.id)
        return project

    def edit_project(self, caller: Caller, project_id: str, patch: ProjectPatch) -> Project:
        changes = patch.provided()

        def work(tx: FirestoreTransaction) -> Project:
            project = load_project(tx, project_id)
            if not can_manage_project(caller, project):
                raise Forbidden("Not authorized to update this project")
            updates = self._patch_updates(caller, project, changes)
            if updates:
                tx.update(PROJECTS, project_id, updates)
            return merged(project, updates)

        return self.firestore_ops.run_transaction(work)

    def _patch_updates(self, caller: Caller, project: Project, changes: Dict[str, Any]) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if "title" in changes:
            updates["title"] = require_text(changes["title"], "title")
        if "description" in changes:
            updates["description"] = require_text(changes["description"], "description")
        if "budget" in changes:
            updates["budget"] = require_positive(changes["budget"], "budget")
        if "skills" in changes:
            updates["skills"] = normalize_skills(changes["skills"])
        if "deadline" in changes:
            updates["deadline"] = changes["deadline"]
        if "status" in changes:
            if caller.role != Role.ADMIN:
                raise Forbidden("Only admins can set project status directly")
            updates.update(self._admin_status_updates(caller, project, changes["status"]))
        return updates

    def _admin_status_updates(self, caller: Caller, project: Project, status: Optional[ProjectStatus]) -> Dict[str, Any]:
        # Admins may jump between non-terminal statuses; the assignment coupling still holds.
        if status is None:
            raise ValidationError("status cannot be cleared")
        status = ProjectStatus(status)
        if is_terminal_status(project.status) and status != ProjectStatus(project.status):
            logger.warning(
                "Refused admin status change: project=%s, from=%s, to=%s, actor=%s",
                project.id, project.status, status.value, caller.id,
            )
            raise InvalidState(f"Project is '{project.status}' and its status can no longer change")
        if status == ProjectStatus.OPEN:
            updates = {"status": status.value, "freelancer_id": None}
        elif project.freelancer_id is None:
            raise InvalidState(f"Cannot set status '{status.value}' on a project with no assigned freelancer")
        else:
            updates = {"status": status.value}
        logger.info(
            "Admin status change: project=%s, from=%s, to=%s, actor=%s",
            project.id, project.status, status.value, caller.id,
        )
        return updates

    def delete_project(self, caller: Caller, project_id: str) -> int:
        """Delete the project and all of its applications. Returns how many applications went with it."""

        def work(tx: FirestoreTransaction) -> int:
            project = load_project(tx, project_id)
            if not can_manage_project(caller, project):
                raise Forbidden("Not authorized to delete this project")
            applications = tx.query(APPLICATIONS, "project_id", "==", project_id)
            for application in applications:
                tx.delete(APPLICATIONS, application["id"])
            tx.delete(PROJECTS, project_id)
            return len(applications)

        removed = self.firestore_ops.run_transaction(work)
        logger.info("Project deleted: project=%s, applications_removed=%d, actor=%s", project_id, removed, caller.id)
        return removed

    def submit_work(self, caller: Caller, project_id: str, link: str, note: Optional[str] = None) -> Project:
        link = require_text(link, "link")

        def work(tx: FirestoreTransaction) -> Project:
            project = load_project(tx, project_id)
            if project.freelancer_id is None or project.freelancer_id != caller.id:
                raise Forbidden("You are not the assigned freelancer for this project")
            if project.status == ProjectStatus.COMPLETED:
                raise InvalidState("Work has already been submitted for this project")

            updates = transition(project, ProjectStatus.COMPLETED, caller)
            updates["submission"] = Submission(link=link, note=note or "").model_dump()
            tx.update(PROJECTS, project_id, updates)
            self.profiles.increment_funds(caller.id, project.budget, tx=tx)
            self.profiles.increment_completed(caller.id, tx=tx)
            return merged(project, updates)

        return self.firestore_ops.run_transaction(work)

    def opt_out(self, caller: Caller, project_id: str) -> Project:
        """
        Release the caller's assignment and reopen the project.

        Applications are left as they are: the freelancer's accepted application
        stays ``accepted`` until the client accepts someone else.
        """

        def work(tx: FirestoreTransaction) -> Project:
            project = load_project(tx, project_id)
            if project.freelancer_id is None or project.freelancer_id != caller.id:
                raise Forbidden("Not authorized or not assigned to this project")
            if project.status == ProjectStatus.COMPLETED:
                raise InvalidState("Cannot opt out of a completed project")

            updates = transition(project, ProjectStatus.OPEN, caller)
            updates["freelancer_id"] = None
            tx.update(PROJECTS, project_id, updates)
            return merged(project, updates)

        return self.firestore_ops.run_transaction(work)
