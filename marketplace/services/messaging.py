import logging
from typing import List, Optional

from marketplace.core.errors import Forbidden, NotFound, ValidationError
from marketplace.core.permissions import is_participant
from marketplace.db.firebase_ops import FirestoreBaseModel
from marketplace.models.schemas import Caller, Message, Project, Role
from marketplace.services.channels import ChannelHub, get_channel_hub
from marketplace.services.projects import PROJECTS

logger = logging.getLogger(__name__)

MESSAGES = "messages"


class MessagingService:
    """
    Project chat. Sending is two separate effects: the message is persisted,
    then fanned out best-effort to the project's room. A failed fan-out never
    touches the stored message.
    """

    def __init__(self, firestore_ops: FirestoreBaseModel, hub: Optional[ChannelHub] = None):
        self.firestore_ops = firestore_ops
        self.hub = hub or get_channel_hub()

    def _get_project(self, project_id: str) -> Project:
        project = self.firestore_ops.get(PROJECTS, project_id, pydantic_model=Project)
        if not project:
            raise NotFound("Project not found")
        return project

    def ensure_can_read(self, caller: Caller, project_id: str) -> Project:
        project = self._get_project(project_id)
        if caller.role != Role.ADMIN and not is_participant(caller, project):
            raise Forbidden("Not authorized to view messages for this project")
        return project

    def send_message(self, caller: Caller, project_id: str, text: Optional[str]) -> Message:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text cannot be empty")
        project = self._get_project(project_id)
        if not is_participant(caller, project):
            raise Forbidden("Only the project's client and assigned freelancer can send messages")

        message = Message(project_id=project_id, sender_id=caller.id, sender_role=caller.role, text=text)
        self.firestore_ops.save(MESSAGES, message, document_id=message.id)
        return message

    async def deliver(self, message: Message) -> int:
        payload = {"type": "message", "message": message.model_dump(mode="json")}
        delivered = await self.hub.publish(message.project_id, payload)
        logger.debug("Message %s delivered to %d connection(s)", message.id, delivered)
        return delivered

    async def post(self, caller: Caller, project_id: str, text: Optional[str]) -> Message:
        """Persist, then notify."""
        message = self.send_message(caller, project_id, text)
        await self.deliver(message)
        return message

    def history(self, caller: Caller, project_id: str) -> List[Message]:
        self.ensure_can_read(caller, project_id)
        messages = self.firestore_ops.query(MESSAGES, "project_id", "==", project_id, pydantic_model=Message)
        # Sort messages by timestamp (ascending); ids are time-ordered for ties
        messages.sort(key=lambda message: (message.timestamp, message.id))
        return messages
