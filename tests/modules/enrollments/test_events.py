"""
Unit tests for realtime event envelopes and topic routing.
"""

import pytest

from enrollment_hub.modules.enrollments.events import (
    EventCollector,
    RealtimeEventType,
    is_valid_topic,
)


class TestIsValidTopic:
    @pytest.mark.parametrize("topic", ["class:cls-1", "student:stu.9", "teacher:T_1"])
    def test_valid_topics(self, topic):
        assert is_valid_topic(topic) is True

    @pytest.mark.parametrize(
        "topic",
        ["cls-1", "room:cls-1", "class:", "class:a b", "class:cls:1", "", "student"],
    )
    def test_invalid_topics(self, topic):
        assert is_valid_topic(topic) is False


class TestEventCollector:
    def test_class_event_goes_to_class_topic(self):
        events = EventCollector("cls-1")

        event = events.class_event(RealtimeEventType.CAPACITY_UPDATE, new_capacity=5)

        assert event.topics == ["class:cls-1"]
        assert event.student_id is None
        assert event.data == {"new_capacity": 5}

    def test_class_event_mirrored_to_teacher(self):
        events = EventCollector("cls-1", teacher_id="t-1")

        event = events.class_event(RealtimeEventType.WAITLIST_UPDATE, total_waitlisted=0)

        assert event.topics == ["class:cls-1", "teacher:t-1"]

    def test_student_event_broadcast(self):
        events = EventCollector("cls-1", teacher_id="t-1")

        event = events.student_event(RealtimeEventType.ENROLLMENT_CONFIRMED, "stu-1")

        assert event.topics == ["student:stu-1", "class:cls-1", "teacher:t-1"]

    def test_personal_student_event(self):
        events = EventCollector("cls-1", teacher_id="t-1")

        event = events.student_event(
            RealtimeEventType.WAITLIST_ADVANCEMENT, "stu-1", broadcast=False, position=1
        )

        assert event.topics == ["student:stu-1"]

    def test_collector_preserves_order(self):
        events = EventCollector("cls-1")
        assert not events.has_state_changes

        events.student_event(RealtimeEventType.ENROLLMENT_DROPPED, "stu-1")
        events.student_event(RealtimeEventType.WAITLIST_ADVANCEMENT, "stu-2", broadcast=False)

        assert events.has_state_changes
        assert [e.type for e in events] == [
            RealtimeEventType.ENROLLMENT_DROPPED,
            RealtimeEventType.WAITLIST_ADVANCEMENT,
        ]
        assert len(events.of_type(RealtimeEventType.WAITLIST_ADVANCEMENT)) == 1


class TestRealtimeEvent:
    def test_to_message_hides_routing(self):
        events = EventCollector("cls-1")
        event = events.student_event(RealtimeEventType.WAITLIST_JOINED, "stu-1", position=3)

        message = event.to_message("class:cls-1")

        assert message["topic"] == "class:cls-1"
        assert message["event"] == "waitlist-joined"
        assert message["payload"]["data"] == {"position": 3}
        assert message["payload"]["student_id"] == "stu-1"
        assert "topics" not in message["payload"]
        assert isinstance(message["payload"]["timestamp"], str)

    def test_notifiable_events(self):
        events = EventCollector("cls-1")
        personal = events.student_event(RealtimeEventType.WAITLIST_ADVANCEMENT, "stu-1")
        summary = events.class_event(RealtimeEventType.ENROLLMENT_COUNT_UPDATE)
        removed = events.student_event(RealtimeEventType.WAITLIST_REMOVED, "stu-1")

        assert personal.is_notifiable is True
        assert summary.is_notifiable is False
        assert removed.is_notifiable is False
