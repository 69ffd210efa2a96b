from __future__ import annotations
"""
Proctoring Session

Orchestrates one proctored exam on this machine:

    MediaAcquisition -> FaceDetector -> ViolationClassifier -> ViolationLog
                                                            -> ViolationPublisher
    LockdownController runs alongside with the same lifetime.
"""

import asyncio
import signal
import uuid
from datetime import datetime
from typing import Callable, Optional

from invigilator.cfg import SessionConfig, get_settings
from invigilator.data.media import MediaAcquisition, MediaDevices
from invigilator.data.publisher import ViolationPublisher, connect_room
from invigilator.engine.classifier import ViolationClassifier
from invigilator.engine.results import ViolationEvent
from invigilator.engine.violation_log import ViolationLog
from invigilator.lockdown import Document, KeyboardLock, LockdownController, create_keyboard_lock
from invigilator.models.face import FaceDetector, ModelCache, get_model_cache
from invigilator.utils.logger import get_logger, set_level
from invigilator.utils.violations import ProctoringStatus

logger = get_logger(__name__)


class ProctoringSession:
    """
    One proctored exam session.

    Owns the media session and the lockdown; borrows the model cache.
    `stop()` releases everything and is safe to call more than once.

    Example:
        >>> async with ProctoringSession(document=Document()) as session:
        ...     await asyncio.sleep(60)
        ...     print(session.snapshot()["status"])
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        devices: Optional[MediaDevices] = None,
        model_cache: Optional[ModelCache] = None,
        document: Optional[Document] = None,
        keyboard_lock: Optional[KeyboardLock] = None,
        log: Optional[ViolationLog] = None,
        publisher: Optional[ViolationPublisher] = None,
        session_id: Optional[str] = None,
        on_threshold_reached: Optional[Callable[[int], None]] = None,
    ):
        """
        Initialize proctoring session.

        Args:
            config: Component configs (from settings if None)
            devices: Camera/microphone access (local devices if None)
            model_cache: Shared face model cache (application cache if None)
            document: Event target for lockdown; no lockdown if None
            keyboard_lock: Native keyboard lock for lockdown
            log: External violation log (one is created if None). Its own
                threshold callback still fires, before `on_threshold_reached`
            publisher: Optional LiveKit publisher for violations
            session_id: Identifier (random if None)
            on_threshold_reached: Called once with the violation count
        """
        self.config = config or get_settings().to_session_config()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.on_threshold_reached = on_threshold_reached

        self.media = MediaAcquisition(devices, self.config.media)
        self.detector = FaceDetector(
            None,
            model_cache if model_cache is not None else get_model_cache(),
            self.config.detector,
        )
        if log is None:
            log = ViolationLog(max_violations=self.config.classifier.max_violations)
        # An injected log keeps its own callback; the session callback runs after it
        self._log_threshold_callback = log.on_threshold_reached
        log.on_threshold_reached = self._on_threshold
        self.log = log
        self.classifier = ViolationClassifier(self.config.classifier, sink=self.log.append)
        self.lockdown = (
            LockdownController(document, keyboard_lock, self.config.lockdown)
            if document is not None else None
        )
        self.publisher = publisher

        self.detector.on_detection(self.classifier.update)
        if self.publisher is not None:
            self.log.subscribe(self._publish_violation)
            self.classifier.on_status_change(self._publish_status)

        self.running = False
        self.error: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.submitted_at: Optional[datetime] = None
        self._publish_tasks: set = set()

    async def start(self) -> bool:
        """
        Start lockdown, capture and detection.

        A media failure leaves the session stopped. A model failure keeps
        capture and lockdown running without face detection.

        Returns:
            True if face detection is running
        """
        if self.running:
            return self.detector.is_detecting

        logger.info(f"🚀 Starting proctoring session {self.session_id}")
        self.error = None
        self.started_at = datetime.utcnow()
        self.submitted_at = None

        if self.lockdown is not None:
            self.lockdown.activate()

        if not await self.media.start_capture():
            self.error = self.media.error
            if self.lockdown is not None:
                self.lockdown.deactivate()
            return False

        self.running = True
        self.detector.video_source = self.media.video_source

        if not await self.detector.initialize():
            self.error = self.detector.error
            logger.error("⛔ Face detection unavailable for this session")
            return False

        if not self.detector.start_detection():
            self.error = self.detector.error
            return False

        logger.info(f"✅ Session {self.session_id} running")
        return True

    async def stop(self):
        """
        Stop detection, release media and lockdown.

        Media and lockdown are released even if an earlier step fails.
        """
        try:
            await self.detector.dispose()
        finally:
            try:
                self.media.stop_capture()
            finally:
                if self.lockdown is not None:
                    self.lockdown.deactivate()

        if self._publish_tasks:
            await asyncio.gather(*self._publish_tasks, return_exceptions=True)

        if self.running:
            self.running = False
            self.submitted_at = datetime.utcnow()
            logger.info(
                f"👋 Session {self.session_id} stopped "
                f"({len(self.log)} violations, {self.total_time_seconds:.0f}s)"
            )

    @property
    def status(self) -> ProctoringStatus:
        return self.classifier.status

    @property
    def total_time_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.submitted_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def timing(self) -> dict:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "total_time_seconds": round(self.total_time_seconds, 1),
        }

    def snapshot(self) -> dict:
        """Everything a status display reads."""
        latest = self.classifier.latest_violation
        last_detection = self.detector.last_detection

        return {
            "session_id": self.session_id,
            "running": self.running,
            "status": self.classifier.status.value,
            "face_count": self.classifier.face_count,
            "latest_violation": latest.to_dict() if latest else None,
            "error": self.error,
            "media": {
                "active": self.media.active,
                "recording": self.media.is_recording,
                "error": self.media.error,
            },
            "detection": {
                "active": self.detector.is_detecting,
                "model_loading": self.detector.is_model_loading,
                "model_failed": self.detector.model_failed,
                "last_detection": last_detection.to_dict() if last_detection else None,
            },
            "violations": {
                "total": len(self.log),
                "by_type": self.log.counts_by_type(),
                "threshold_reached": self.log.threshold_reached,
            },
            "lockdown": self.lockdown.stats() if self.lockdown else None,
            "timing": self.timing(),
        }

    def to_metadata(self) -> dict:
        """Proctoring summary attached to an exam submission."""
        metadata = self.log.to_metadata()
        if self.lockdown is not None:
            metadata["tab_switches"] = self.lockdown.visibility_monitor.tab_switches
            metadata["fullscreen_exits"] = [v.to_dict() for v in self.lockdown.fullscreen_monitor.exits]
        metadata["timing"] = self.timing()
        return metadata

    def _on_threshold(self, count: int):
        logger.warning(f"⛔ Session {self.session_id} reached {count} violations")
        if self._log_threshold_callback:
            self._log_threshold_callback(count)
        if self.on_threshold_reached:
            self.on_threshold_reached(count)

    def _track(self, coro):
        task = asyncio.ensure_future(coro)
        self._publish_tasks.add(task)
        task.add_done_callback(self._on_publish_done)

    def _on_publish_done(self, task: asyncio.Task):
        self._publish_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ Publish failed: {task.exception()}")

    def _publish_violation(self, event: ViolationEvent):
        self._track(self.publisher.publish(event))

    def _publish_status(self, status: ProctoringStatus):
        self._track(self.publisher.publish_status({
            "status": status.value,
            "face_count": self.classifier.face_count,
            "violation_count": len(self.log),
        }))

    async def __aenter__(self) -> "ProctoringSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()


async def main(room_name: Optional[str] = None, duration: Optional[float] = None) -> int:
    """
    Run a local proctoring session until interrupted.

    Args:
        room_name: LiveKit room to publish violations to (optional)
        duration: Stop after this many seconds (runs until signalled if None)
    """
    settings = get_settings()
    set_level(settings.log_level)
    room_name = room_name or settings.livekit_room

    stop_event = asyncio.Event()
    publisher = None
    if room_name:
        room = await connect_room(settings.to_livekit_config(), room_name)
        publisher = ViolationPublisher(room, config=settings.to_livekit_config())

    session = ProctoringSession(
        settings.to_session_config(),
        document=Document(fullscreen=True),
        keyboard_lock=create_keyboard_lock(settings.lock_keyboard),
        publisher=publisher,
        on_threshold_reached=lambda count: stop_event.set(),
    )

    # Handle shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        print("\n⚠️ Shutting down...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await session.start()
        if not session.running:
            logger.error(f"❌ {session.error}")
            return 1

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass
    finally:
        await session.stop()
        if publisher is not None:
            await publisher.close()
        get_model_cache().dispose()

    metadata = session.to_metadata()
    print(f"📋 Violations: {metadata['total_violation_count']} {metadata['violations_by_type']}")
    return 0


if __name__ == "__main__":
    print("🚀 Starting Invigilator session...")
    raise SystemExit(asyncio.run(main()))
