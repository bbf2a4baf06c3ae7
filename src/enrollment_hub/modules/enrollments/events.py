"""
Enrollment Events

Event envelopes produced by enrollment operations and consumed by the
realtime broadcast hub and the notification dispatcher.

Events are buffered in an ``EventCollector`` while an operation runs and are
only published after the operation's transaction commits, so subscribers
never see state that was rolled back.
"""

import enum
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from enrollment_hub.modules.enrollments.helpers import is_valid_identifier


class RealtimeEventType(str, enum.Enum):
    """Event names pushed to realtime subscribers."""

    ENROLLMENT_CONFIRMED = "enrollment-confirmed"
    ENROLLMENT_DROPPED = "enrollment-dropped"
    WAITLIST_JOINED = "waitlist-joined"
    WAITLIST_ADVANCEMENT = "waitlist-advancement"
    WAITLIST_POSITION_CHANGE = "waitlist-position-change"
    WAITLIST_REMOVED = "waitlist-removed"
    WAITLIST_OFFER_EXPIRED = "waitlist-offer-expired"
    WAITLIST_OFFER_WITHDRAWN = "waitlist-offer-withdrawn"
    WAITLIST_OFFER_REMINDER = "waitlist-offer-reminder"
    ENROLLMENT_COUNT_UPDATE = "enrollment-count-update"
    CAPACITY_UPDATE = "capacity-update"
    WAITLIST_UPDATE = "waitlist-update"


# Event types that are also delivered through the notification collaborator
NOTIFIABLE_EVENT_TYPES = frozenset(
    {
        RealtimeEventType.ENROLLMENT_CONFIRMED,
        RealtimeEventType.WAITLIST_JOINED,
        RealtimeEventType.WAITLIST_ADVANCEMENT,
        RealtimeEventType.WAITLIST_POSITION_CHANGE,
        RealtimeEventType.WAITLIST_OFFER_EXPIRED,
        RealtimeEventType.WAITLIST_OFFER_WITHDRAWN,
        RealtimeEventType.WAITLIST_OFFER_REMINDER,
    }
)


def class_topic(class_id: str) -> str:
    return f"class:{class_id}"


def student_topic(student_id: str) -> str:
    return f"student:{student_id}"


def teacher_topic(teacher_id: str) -> str:
    return f"teacher:{teacher_id}"


TOPIC_PREFIXES = ("class", "student", "teacher")


def is_valid_topic(topic: str) -> bool:
    """True for ``class:<id>``, ``student:<id>`` and ``teacher:<id>`` topics."""
    prefix, sep, identifier = topic.partition(":")
    return sep == ":" and prefix in TOPIC_PREFIXES and is_valid_identifier(identifier)


class RealtimeEvent(BaseModel):
    """A single state-change event."""

    type: RealtimeEventType
    class_id: str
    student_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Delivery routing, not part of the wire payload
    topics: list[str] = Field(default_factory=list, exclude=True)

    @property
    def is_notifiable(self) -> bool:
        return self.student_id is not None and self.type in NOTIFIABLE_EVENT_TYPES

    def to_message(self, topic: str) -> dict[str, Any]:
        """Serialize for a WebSocket subscriber of ``topic``."""
        return {
            "topic": topic,
            "event": self.type.value,
            "payload": self.model_dump(mode="json"),
        }


class EventCollector:
    """
    Buffers the events of one coordinated operation on one class.

    The collector knows the class's teacher (once the class is loaded) so it
    can mirror class-level events to the teacher topic.
    """

    def __init__(self, class_id: str, teacher_id: str | None = None):
        self.class_id = class_id
        self.teacher_id = teacher_id
        self._events: list[RealtimeEvent] = []

    def __iter__(self):
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> list[RealtimeEvent]:
        return list(self._events)

    def of_type(self, event_type: RealtimeEventType) -> list[RealtimeEvent]:
        return [event for event in self._events if event.type == event_type]

    def _class_topics(self) -> list[str]:
        topics = [class_topic(self.class_id)]
        if self.teacher_id:
            topics.append(teacher_topic(self.teacher_id))
        return topics

    def class_event(self, event_type: RealtimeEventType, **data: Any) -> RealtimeEvent:
        """Record an event for everyone watching the class (and its teacher)."""
        event = RealtimeEvent(
            type=event_type,
            class_id=self.class_id,
            data=data,
            topics=self._class_topics(),
        )
        self._events.append(event)
        return event

    def student_event(
        self,
        event_type: RealtimeEventType,
        student_id: str,
        *,
        broadcast: bool = True,
        **data: Any,
    ) -> RealtimeEvent:
        """
        Record a personal event for one student.

        Args:
            event_type: Event name
            student_id: Student receiving the event
            broadcast: Also deliver to the class and teacher topics
            **data: Event payload
        """
        topics = [student_topic(student_id)]
        if broadcast:
            topics.extend(self._class_topics())

        event = RealtimeEvent(
            type=event_type,
            class_id=self.class_id,
            student_id=student_id,
            data=data,
            topics=topics,
        )
        self._events.append(event)
        return event

    @property
    def has_state_changes(self) -> bool:
        return len(self._events) > 0
