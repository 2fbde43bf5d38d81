import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, WebSocket, WebSocketDisconnect, status

from marketplace.core.deps import get_current_user, get_messaging_service, resolve_caller
from marketplace.core.errors import MarketplaceError
from marketplace.db.firebase_ops import FirestoreBaseModel, get_firestore_ops_instance
from marketplace.models.schemas import Caller, Message, MessageCreate
from marketplace.services.messaging import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messaging"])


@router.get("/messages/{project_id}", response_model=List[Message])
async def get_messages_for_project(
    project_id: str,
    caller: Caller = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.history(caller, project_id)


@router.post("/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_in: MessageCreate,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    message = service.send_message(caller, message_in.project_id, message_in.text)
    # Live delivery happens after the response; it never affects the stored message
    background_tasks.add_task(service.deliver, message)
    return message


@router.websocket("/ws/projects/{project_id}")
async def project_channel(
    websocket: WebSocket,
    project_id: str,
    token: Optional[str] = None,
    firestore_ops: FirestoreBaseModel = Depends(get_firestore_ops_instance),
    service: MessagingService = Depends(get_messaging_service),
):
    try:
        caller = resolve_caller(token, firestore_ops)
        service.ensure_can_read(caller, project_id)
    except MarketplaceError as exc:
        logger.warning("Rejected channel connection for project %s: %s", project_id, exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    service.hub.subscribe(project_id, websocket)
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError):
                # Undecodable text, or a binary frame
                await websocket.send_json({"type": "error", "detail": "Frames must be JSON objects"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "detail": "Frames must be JSON objects"})
                continue
            try:
                await service.post(caller, project_id, data.get("text"))
            except MarketplaceError as exc:
                await websocket.send_json({"type": "error", "detail": exc.detail})
    except WebSocketDisconnect:
        pass
    finally:
        service.hub.unsubscribe(project_id, websocket)
