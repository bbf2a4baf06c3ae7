"""
Enrollment Coordinator

Single entry point for every state-changing enrollment operation, from HTTP,
WebSocket and background jobs alike.

Each operation runs as:
1. Validate inputs (no lock taken for malformed requests)
2. Acquire the class lock (FIFO; other classes are unaffected)
3. Open a session, run the service logic, append class summaries
4. Commit, or roll back on any failure
5. Publish events to realtime subscribers and queue notifications, still
   holding the lock so per-class event order matches commit order
6. Release the lock and return an ``OperationResult``

Errors never propagate to the caller: they come back as a failed result
with an ``error_code``. The locked section is shielded from caller
cancellation, so a client that disconnects mid-operation cannot release the
lock early or leave a transaction half applied.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment_hub.core.broadcast import BroadcastHub, get_hub
from enrollment_hub.core.database import async_session_maker
from enrollment_hub.modules.enrollments import service
from enrollment_hub.modules.enrollments.events import EventCollector
from enrollment_hub.modules.enrollments.exceptions import (
    EnrollmentServiceError,
    StorageError,
)
from enrollment_hub.modules.enrollments.locks import ClassLockRegistry
from enrollment_hub.modules.enrollments.models import OfferResponse
from enrollment_hub.modules.enrollments.notifications import NotificationDispatcher
from enrollment_hub.modules.enrollments.schemas import OperationResult

logger = logging.getLogger(__name__)

Operation = Callable[[AsyncSession, EventCollector, datetime], Awaitable[OperationResult]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EnrollmentCoordinator:
    """
    Serializes enrollment operations per class and owns their transactions.

    Args:
        session_factory: Creates one AsyncSession per operation
        hub: Realtime broadcast hub (defaults to the process-wide hub)
        notifier: Student notification dispatcher
        clock: Source of "now" for offer deadlines
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        hub: BroadcastHub | None = None,
        notifier: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory or async_session_maker
        self._hub = hub or get_hub()
        self._notifier = notifier or NotificationDispatcher()
        self._clock = clock
        self.locks = ClassLockRegistry()

    @property
    def hub(self) -> BroadcastHub:
        return self._hub

    @property
    def notifier(self) -> NotificationDispatcher:
        return self._notifier

    # ============================================
    # Public Operations
    # ============================================

    async def request_enrollment(
        self,
        student_id: str,
        class_id: str,
        justification: str | None = None,
    ) -> OperationResult:
        """Enroll a student, or waitlist them if the class is full."""
        return await self._run(
            "request_enrollment",
            class_id,
            student_id,
            lambda db, events, now: service.request_enrollment(
                db, events, student_id, class_id, justification, now
            ),
        )

    async def drop_enrollment(self, student_id: str, class_id: str) -> OperationResult:
        """Drop an enrollment or waitlist entry (no-op if nothing is active)."""
        return await self._run(
            "drop_enrollment",
            class_id,
            student_id,
            lambda db, events, now: service.drop_enrollment(db, events, student_id, class_id, now),
        )

    async def respond_to_waitlist_offer(
        self,
        student_id: str,
        class_id: str,
        response: OfferResponse | str,
    ) -> OperationResult:
        """Accept or decline an open waitlist offer."""
        try:
            answer = OfferResponse(response)
        except ValueError:
            return OperationResult.failure(
                self._safe_id(class_id),
                "INVALID_RESPONSE",
                "response must be 'accept' or 'decline'",
                student_id=self._safe_id(student_id),
            )

        return await self._run(
            "respond_to_waitlist_offer",
            class_id,
            student_id,
            lambda db, events, now: service.respond_to_offer(
                db, events, student_id, class_id, answer, now
            ),
        )

    async def promote_next(self, class_id: str) -> OperationResult:
        """Offer any free seat to the head of the class waitlist."""
        return await self._run(
            "promote_next",
            class_id,
            None,
            lambda db, events, now: service.promote_next(db, events, class_id, now),
        )

    async def adjust_capacity(self, class_id: str, new_capacity: int) -> OperationResult:
        """Change a class's capacity; an increase promotes waitlisted students."""
        try:
            service.validate_capacity(new_capacity)
        except EnrollmentServiceError as e:
            return OperationResult.failure(self._safe_id(class_id), e.error_code, e.message)

        return await self._run(
            "adjust_capacity",
            class_id,
            None,
            lambda db, events, now: service.adjust_capacity(
                db, events, class_id, new_capacity, now
            ),
        )

    async def expire_offer(self, student_id: str, class_id: str) -> OperationResult:
        """Expire a lapsed offer and pass the seat on."""
        return await self._run(
            "expire_offer",
            class_id,
            student_id,
            lambda db, events, now: service.expire_offer(db, events, student_id, class_id, now),
        )

    async def send_offer_reminder(self, student_id: str, class_id: str) -> OperationResult:
        """Remind a student that their offer deadline is approaching."""
        return await self._run(
            "send_offer_reminder",
            class_id,
            student_id,
            lambda db, events, now: service.send_offer_reminder(
                db, events, student_id, class_id, now
            ),
        )

    # ============================================
    # Execution
    # ============================================

    @staticmethod
    def _safe_id(value: object) -> str:
        return value if isinstance(value, str) else ""

    async def _run(
        self,
        op_name: str,
        class_id: str,
        student_id: str | None,
        operation: Operation,
    ) -> OperationResult:
        try:
            if student_id is None:
                service.validate_identifiers(class_id=class_id)
            else:
                service.validate_identifiers(class_id=class_id, student_id=student_id)
        except EnrollmentServiceError as e:
            return OperationResult.failure(
                self._safe_id(class_id),
                e.error_code,
                e.message,
                student_id=self._safe_id(student_id) or None,
            )

        return await asyncio.shield(self._locked(op_name, class_id, student_id, operation))

    async def _locked(
        self,
        op_name: str,
        class_id: str,
        student_id: str | None,
        operation: Operation,
    ) -> OperationResult:
        async with self.locks.hold(class_id):
            events = EventCollector(class_id)
            now = self._clock()

            async with self._session_factory() as db:
                try:
                    result = await operation(db, events, now)
                    if events.has_state_changes:
                        await service.append_class_summary(db, events, class_id, now)
                    await db.commit()
                except EnrollmentServiceError as e:
                    await db.rollback()
                    logger.info(f"{op_name} rejected for class {class_id}: {e.error_code}")
                    return OperationResult.failure(
                        class_id, e.error_code, e.message, student_id=student_id
                    )
                except SQLAlchemyError as e:
                    await db.rollback()
                    logger.error(f"{op_name} failed for class {class_id}: {e}", exc_info=True)
                    error = StorageError()
                    return OperationResult.failure(
                        class_id, error.error_code, error.message, student_id=student_id
                    )
                except Exception as e:
                    await db.rollback()
                    logger.error(
                        f"Unexpected error in {op_name} for class {class_id}: {e}",
                        exc_info=True,
                    )
                    return OperationResult.failure(
                        class_id,
                        "INTERNAL_ERROR",
                        "The operation could not be completed.",
                        student_id=student_id,
                    )

            await self._publish(events)
            return result

    async def _publish(self, events: EventCollector) -> None:
        for event in events:
            for topic in event.topics:
                await self._hub.publish(topic, event.to_message(topic))
            self._notifier.dispatch(event)

    async def shutdown(self) -> None:
        await self._notifier.drain()


# Global coordinator instance
_coordinator: EnrollmentCoordinator | None = None


def init_coordinator(**kwargs) -> EnrollmentCoordinator:
    """
    Create the process-wide coordinator.

    Call this on application startup.
    """
    global _coordinator
    _coordinator = EnrollmentCoordinator(**kwargs)
    return _coordinator


def get_coordinator() -> EnrollmentCoordinator:
    """
    Get the process-wide coordinator (FastAPI dependency).

    Created with defaults on first use if startup did not initialize it.
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = EnrollmentCoordinator()
    return _coordinator


async def close_coordinator() -> None:
    global _coordinator
    if _coordinator is not None:
        await _coordinator.shutdown()
        _coordinator = None
