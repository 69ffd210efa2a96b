"""
Violation Publisher

Publishes violations and status snapshots over a LiveKit data channel so
a remote proctor can follow the session live.
"""

import json
from datetime import datetime
from typing import Optional

from invigilator.cfg import LiveKitConfig
from invigilator.engine.results import ViolationEvent
from invigilator.utils.logger import get_logger

try:
    from livekit import api, rtc
    LIVEKIT_AVAILABLE = True
except ImportError:
    LIVEKIT_AVAILABLE = False

logger = get_logger(__name__)


async def connect_room(
    config: LiveKitConfig,
    room_name: str,
    participant_identity: str = "invigilator",
) -> "rtc.Room":
    """
    Join a LiveKit room as a data-only participant.

    Args:
        config: LiveKit server and credentials
        room_name: Room to join
        participant_identity: Identity for this agent

    Returns:
        Connected room
    """
    if not LIVEKIT_AVAILABLE:
        raise ImportError("livekit package required: pip install livekit livekit-api")

    token = api.AccessToken(config.api_key, config.api_secret)
    token.with_identity(participant_identity)
    token.with_name("Invigilator")
    token.with_grants(api.VideoGrants(
        room_join=True,
        room=room_name,
        can_subscribe=False,
        can_publish=False,
        can_publish_data=True,
    ))

    room = rtc.Room()
    await room.connect(config.url, token.to_jwt())
    logger.info(f"✅ Connected to room: {room_name}")
    return room


class ViolationPublisher:
    """
    Publishes violations via LiveKit data channel.

    Handles rate limiting per violation type to prevent spam.

    Example:
        >>> publisher = ViolationPublisher(room, participant_id="candidate-42")
        >>> await publisher.publish(event)
    """

    def __init__(
        self,
        room: "rtc.Room",
        participant_id: str = "",
        config: Optional[LiveKitConfig] = None,
    ):
        """
        Initialize violation publisher.

        Args:
            room: Connected LiveKit room
            participant_id: Candidate the violations belong to
            config: Topics and cooldown
        """
        config = config or LiveKitConfig()

        self.room = room
        self.participant_id = participant_id
        self.data_topic = config.data_topic
        self.status_topic = config.status_topic
        self.cooldown_seconds = config.cooldown_seconds

        self.published = 0
        self._last_published: dict = {}

    async def publish(self, event: ViolationEvent) -> bool:
        """
        Publish a violation.

        Returns:
            True if published, False if rate-limited
        """
        key = event.type.value
        if not self._check_cooldown(key):
            return False

        payload = json.dumps({
            "participant_id": self.participant_id,
            **event.to_dict(),
        }).encode("utf-8")

        await self.room.local_participant.publish_data(
            payload=payload,
            topic=self.data_topic,
            reliable=True,
        )

        self._last_published[key] = datetime.utcnow()
        self.published += 1
        logger.info(f"📤 Violation published: {event.type.value} ({event.severity.value})")
        return True

    async def publish_status(self, status: dict):
        """Publish a status snapshot (unreliable, latest wins)."""
        payload = json.dumps({
            "type": "status_update",
            "participant_id": self.participant_id,
            "timestamp": datetime.utcnow().isoformat(),
            **status,
        }).encode("utf-8")

        await self.room.local_participant.publish_data(
            payload=payload,
            topic=self.status_topic,
            reliable=False,
        )

    def _check_cooldown(self, key: str) -> bool:
        last_time = self._last_published.get(key)
        if last_time is None:
            return True

        elapsed = (datetime.utcnow() - last_time).total_seconds()
        return elapsed >= self.cooldown_seconds

    def reset_cooldown(self):
        self._last_published.clear()

    async def close(self):
        """Leave the room."""
        await self.room.disconnect()
