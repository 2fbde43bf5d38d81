import logging
from typing import List, Optional

from marketplace.core.errors import Conflict, Forbidden, InvalidState, NotFound
from marketplace.core.permissions import ensure_role
from marketplace.db.firebase_ops import FirestoreBaseModel, FirestoreTransaction
from marketplace.models.schemas import (
    Application,
    ApplicationCreate,
    ApplicationStats,
    ApplicationStatus,
    Bid,
    Caller,
    ProjectStatus,
    Role,
    application_key,
)
from marketplace.services.profiles import FreelancerProfiles
from marketplace.services.projects import (
    APPLICATIONS,
    PROJECTS,
    load_project,
    require_positive,
    require_text,
    transition,
)

logger = logging.getLogger(__name__)


def _oldest_first(applications: List[Application]) -> List[Application]:
    return sorted(applications, key=lambda application: application.applied_at)


def _load_application(tx: FirestoreTransaction, application_id: str) -> Application:
    application = tx.get(APPLICATIONS, application_id, pydantic_model=Application)
    if not application:
        raise NotFound("Application not found")
    return application


def _ensure_owning_client(caller: Caller, application: Application, action: str) -> None:
    if caller.role != Role.CLIENT or application.client_id != caller.id:
        raise Forbidden(f"Not authorized to {action} this application")


class ApplicationService:
    def __init__(self, firestore_ops: FirestoreBaseModel, profiles: Optional[FreelancerProfiles] = None):
        self.firestore_ops = firestore_ops
        self.profiles = profiles or FreelancerProfiles(firestore_ops)

    def submit_application(self, caller: Caller, application_in: ApplicationCreate) -> Application:
        ensure_role(caller, Role.FREELANCER, detail="Only freelancers can apply to projects")
        proposal = require_text(application_in.proposal, "proposal")
        bid_amount = require_positive(application_in.bid_amount, "bid amount")
        project_id = application_in.project_id
        # One document per (project, freelancer): a second attempt reads the first.
        application_id = application_key(project_id, caller.id)

        def work(tx: FirestoreTransaction) -> Application:
            project = load_project(tx, project_id)
            if tx.get(APPLICATIONS, application_id) is not None:
                raise Conflict("Already applied to this project")
            if project.status != ProjectStatus.OPEN:
                raise InvalidState("Project is not open for applications")

            application = Application(
                id=application_id,
                project_id=project.id,
                client_id=project.client_id,
                freelancer_id=caller.id,
                proposal=proposal,
                bid_amount=bid_amount,
                title=project.title,
                description=project.description,
                skills=project.skills,
            )
            bids = [bid.model_dump() for bid in project.bids]
            bids.append(Bid(freelancer_id=caller.id, amount=bid_amount).model_dump())

            tx.set(APPLICATIONS, application_id, application)
            tx.update(PROJECTS, project.id, {"bids": bids})
            self.profiles.append_application(caller.id, application_id, tx=tx)
            return application

        application = self.firestore_ops.run_transaction(work)
        logger.info("Application submitted: application=%s, project=%s, freelancer=%s", application.id, project_id, caller.id)
        return application

    def accept_application(self, caller: Caller, application_id: str) -> Application:
        """
        Assign the applicant to the project and reject every other application
        for it, all in one transaction.

        Accepting an application that is already accepted for the project's
        current assignment is a no-op.
        """

        def work(tx: FirestoreTransaction) -> Application:
            application = _load_application(tx, application_id)
            _ensure_owning_client(caller, application, "accept")
            project = load_project(tx, application.project_id)
            siblings = tx.query(APPLICATIONS, "project_id", "==", project.id, pydantic_model=Application)

            if project.status != ProjectStatus.OPEN:
                if application.status == ApplicationStatus.ACCEPTED and project.freelancer_id == application.freelancer_id:
                    return application
                raise InvalidState("Project is not open for new assignments")
            if application.status == ApplicationStatus.REJECTED:
                raise InvalidState("Application has already been rejected")

            updates = transition(project, ProjectStatus.IN_PROGRESS, caller)
            updates["freelancer_id"] = application.freelancer_id
            tx.update(APPLICATIONS, application.id, {"status": ApplicationStatus.ACCEPTED.value})
            tx.update(PROJECTS, project.id, updates)

            rejected = 0
            for other in siblings:
                if other.id != application.id and other.status != ApplicationStatus.REJECTED:
                    tx.update(APPLICATIONS, other.id, {"status": ApplicationStatus.REJECTED.value})
                    rejected += 1
            self.profiles.append_project(application.freelancer_id, project.id, tx=tx)

            logger.info(
                "Application accepted: application=%s, project=%s, freelancer=%s, others_rejected=%d",
                application.id, project.id, application.freelancer_id, rejected,
            )
            return application.model_copy(update={"status": ApplicationStatus.ACCEPTED.value})

        return self.firestore_ops.run_transaction(work)

    def reject_application(self, caller: Caller, application_id: str) -> Application:
        def work(tx: FirestoreTransaction) -> Application:
            application = _load_application(tx, application_id)
            _ensure_owning_client(caller, application, "reject")
            if application.status == ApplicationStatus.REJECTED:
                return application
            if application.status == ApplicationStatus.ACCEPTED:
                project = load_project(tx, application.project_id)
                if project.freelancer_id == application.freelancer_id:
                    raise InvalidState("Cannot reject the application of the assigned freelancer")

            tx.update(APPLICATIONS, application.id, {"status": ApplicationStatus.REJECTED.value})
            return application.model_copy(update={"status": ApplicationStatus.REJECTED.value})

        application = self.firestore_ops.run_transaction(work)
        logger.info("Application rejected: application=%s, actor=%s", application_id, caller.id)
        return application

    def list_for_project(self, caller: Caller, project_id: str) -> List[Application]:
        project = self.firestore_ops.get(PROJECTS, project_id)
        if not project:
            raise NotFound("Project not found")
        applications = self.firestore_ops.query(APPLICATIONS, "project_id", "==", project_id, pydantic_model=Application)

        if caller.role == Role.ADMIN:
            visible = applications
        elif caller.role == Role.CLIENT:
            if project["client_id"] != caller.id:
                raise Forbidden("Not authorized to view applications for this project")
            visible = applications
        elif caller.role == Role.FREELANCER:
            visible = [application for application in applications if application.freelancer_id == caller.id]
        else:
            raise ValueError(f"Unhandled role: {caller.role}")
        return _oldest_first(visible)

    def list_mine(self, caller: Caller) -> List[Application]:
        if caller.role == Role.FREELANCER:
            field = "freelancer_id"
        elif caller.role == Role.CLIENT:
            field = "client_id"
        elif caller.role == Role.ADMIN:
            return []
        else:
            raise ValueError(f"Unhandled role: {caller.role}")
        return _oldest_first(self.firestore_ops.query(APPLICATIONS, field, "==", caller.id, pydantic_model=Application))

    def list_all(self, caller: Caller) -> List[Application]:
        ensure_role(caller, Role.ADMIN)
        return _oldest_first(self.firestore_ops.get_all(APPLICATIONS, pydantic_model=Application))

    def stats(self, caller: Caller) -> ApplicationStats:
        ensure_role(caller, Role.ADMIN)
        count = self.firestore_ops.count
        return ApplicationStats(
            total=count(APPLICATIONS),
            pending=count(APPLICATIONS, "status", ApplicationStatus.PENDING.value),
            accepted=count(APPLICATIONS, "status", ApplicationStatus.ACCEPTED.value),
            rejected=count(APPLICATIONS, "status", ApplicationStatus.REJECTED.value),
        )
