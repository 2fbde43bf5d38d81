"""
Room-based live fan-out for project chat.

A room is keyed by project id. Every connection in a room receives every
publish; delivery is best-effort and at most once per connection. A
connection that fails to receive is dropped from its room.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, Protocol, Set


logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class ChannelHub:
    def __init__(self):
        self._rooms: Dict[str, Set[Connection]] = defaultdict(set)

    def subscribe(self, project_id: str, connection: Connection) -> None:
        self._rooms[project_id].add(connection)
        logger.info("Connection joined project room %s (%d connected)", project_id, len(self._rooms[project_id]))

    def unsubscribe(self, project_id: str, connection: Connection) -> None:
        room = self._rooms.get(project_id)
        if room is None:
            return
        room.discard(connection)
        if not room:
            del self._rooms[project_id]
        logger.info("Connection left project room %s", project_id)

    def subscriber_count(self, project_id: str) -> int:
        return len(self._rooms.get(project_id, ()))

    async def publish(self, project_id: str, payload: Dict[str, Any]) -> int:
        """Send ``payload`` to every connection in the room. Returns the number reached."""
        delivered = 0
        for connection in list(self._rooms.get(project_id, ())):
            try:
                await connection.send_json(payload)
            except Exception:
                logger.warning("Dropping connection from project room %s after failed send", project_id, exc_info=True)
                self.unsubscribe(project_id, connection)
                continue
            delivered += 1
        return delivered


_hub = ChannelHub()


def get_channel_hub() -> ChannelHub:
    return _hub
