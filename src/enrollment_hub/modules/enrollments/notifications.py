"""
Student Notifications

Delivers the personal enrollment events (confirmation, waitlist placement,
offers and their withdrawal, position changes, expiry, reminders) to
students by email.

Delivery is fire-and-forget: ``NotificationDispatcher.dispatch`` schedules a
background task and returns immediately, so a slow or failing mail provider
never delays or fails an enrollment operation. Failures are logged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from enrollment_hub.core.config import settings
from enrollment_hub.core.email import render_email, send_email
from enrollment_hub.modules.enrollments.events import RealtimeEvent, RealtimeEventType

logger = logging.getLogger(__name__)

# Maps a student id to an email address (None = no known address)
RecipientResolver = Callable[[str], Awaitable[str | None]]


async def default_recipient_resolver(student_id: str) -> str | None:
    """Derive an address from STUDENT_EMAIL_DOMAIN, if configured."""
    if not settings.student_email_domain:
        return None
    return f"{student_id}@{settings.student_email_domain}"


def build_message(event: RealtimeEvent) -> tuple[str, str] | None:
    """
    Build the (subject, html) pair for a notifiable event.

    Returns:
        None for event types that have no email template
    """
    data = event.data
    class_id = event.class_id
    class_path = f"/classes/{class_id}"

    if event.type == RealtimeEventType.ENROLLMENT_CONFIRMED:
        return (
            f"You're enrolled in {class_id}",
            render_email(
                "Enrollment Confirmed",
                [f"Your seat in class {class_id} is confirmed."],
                "View class",
                class_path,
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_JOINED:
        return (
            f"You're on the waitlist for {class_id}",
            render_email(
                "Added to Waitlist",
                [
                    f"Class {class_id} is currently full.",
                    f"You are number {data.get('position')} on the waitlist. "
                    "We'll let you know as soon as a seat opens up.",
                ],
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_ADVANCEMENT:
        return (
            f"A seat opened up in {class_id}",
            render_email(
                "A Spot Is Available",
                [
                    data.get("message") or f"A seat is available in class {class_id}.",
                    f"Please respond before {data.get('response_deadline')} (UTC).",
                ],
                "Respond to offer",
                f"{class_path}/waitlist",
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_POSITION_CHANGE:
        return (
            f"Your waitlist position for {class_id} changed",
            render_email(
                "Waitlist Update",
                [
                    f"You moved from number {data.get('old_position')} to number "
                    f"{data.get('new_position')} on the waitlist for class {class_id}."
                ],
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_OFFER_EXPIRED:
        return (
            f"Your offer for {class_id} expired",
            render_email(
                "Offer Expired",
                [
                    f"Your offer for a seat in class {class_id} expired without a response, "
                    "and you have been removed from the waitlist.",
                    "You can request enrollment again at any time.",
                ],
                "View class",
                class_path,
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_OFFER_WITHDRAWN:
        return (
            f"Your offer for {class_id} was withdrawn",
            render_email(
                "Offer Withdrawn",
                [
                    f"The seat offered to you in class {class_id} is no longer available "
                    "because the class capacity was reduced.",
                    f"You keep your place as number {data.get('position')} on the waitlist.",
                ],
                "View waitlist",
                f"{class_path}/waitlist",
            ),
        )
    if event.type == RealtimeEventType.WAITLIST_OFFER_REMINDER:
        return (
            f"Reminder: respond to your {class_id} offer",
            render_email(
                "Your Offer Expires Soon",
                [
                    f"You have about {data.get('hours_remaining')} hours left to accept "
                    f"your seat in class {class_id}.",
                ],
                "Respond to offer",
                f"{class_path}/waitlist",
            ),
        )

    return None


class NotificationDispatcher:
    """Schedules notification delivery without blocking the caller."""

    def __init__(self, resolver: RecipientResolver | None = None) -> None:
        self._resolver = resolver or default_recipient_resolver
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, event: RealtimeEvent) -> asyncio.Task | None:
        """Schedule delivery of one event; non-notifiable events are ignored."""
        if not event.is_notifiable:
            return None

        task = asyncio.create_task(self._deliver(event))
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, event: RealtimeEvent) -> None:
        try:
            message = build_message(event)
            if message is None:
                return

            recipient = await self._resolver(event.student_id)
            subject, html = message
            if recipient is None:
                logger.info(
                    f"No address for student {event.student_id}, "
                    f"skipping '{event.type.value}' notification: {subject}"
                )
                return

            await send_email(recipient, subject, html)
        except Exception as e:
            logger.error(
                f"Failed to deliver '{event.type.value}' notification "
                f"to student {event.student_id}: {e}",
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for all in-flight deliveries (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)
