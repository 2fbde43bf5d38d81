from marketplace.core.errors import Forbidden
from marketplace.models.schemas import Caller, Project, Role


def ensure_role(caller: Caller, *roles: Role, detail: str | None = None) -> None:
    if caller.role not in roles:
        allowed = " or ".join(role.value for role in roles)
        raise Forbidden(detail or f"Only {allowed} users can perform this action")


def can_manage_project(caller: Caller, project: Project) -> bool:
    """Owning client or any admin may edit and delete a project."""
    if caller.role == Role.ADMIN:
        return True
    if caller.role == Role.CLIENT:
        return project.client_id == caller.id
    if caller.role == Role.FREELANCER:
        return False
    raise ValueError(f"Unhandled role: {caller.role}")


def is_participant(caller: Caller, project: Project) -> bool:
    """The owning client and the assigned freelancer take part in a project's chat."""
    if caller.role == Role.CLIENT:
        return project.client_id == caller.id
    if caller.role == Role.FREELANCER:
        return project.freelancer_id is not None and project.freelancer_id == caller.id
    if caller.role == Role.ADMIN:
        return False
    raise ValueError(f"Unhandled role: {caller.role}")
