"""
Enrollments Module

Seat admission, FIFO waitlists and realtime fan-out for classes:
1. Enrollment requests: enroll while seats are free, otherwise waitlist
2. Drops: free the seat and offer it to the next waitlisted student
3. Waitlist offers: time-limited (24 hours by default), accept or decline
4. Capacity changes routed through the same per-class coordinator

API Endpoints:
- POST /enrollments - Request enrollment
- POST /enrollments/drop - Drop enrollment or leave the waitlist
- POST /enrollments/waitlist-response - Accept or decline an offer
- GET /enrollments/{class_id}/{student_id} - Latest enrollment record
- WS /ws - Topic subscriptions and enrollment commands

Consistency Guarantees:
- One lock per class serializes every state change on that class
- Seat reservation is a single conditional UPDATE
- Events are published only after the transaction commits

Background Jobs (via APScheduler):
- waitlist_expire_offers: expires lapsed offers and cascades the seat
- waitlist_send_offer_reminders: reminds students before their deadline
"""

from .jobs import register_waitlist_jobs
from .realtime import router as realtime_router
from .router import router

__all__ = ["router", "realtime_router", "register_waitlist_jobs"]
