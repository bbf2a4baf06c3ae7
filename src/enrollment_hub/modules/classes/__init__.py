"""
Classes Module

Class capacity records: registration, capacity snapshots, capacity changes
(through the enrollment coordinator) and the class dashboard endpoints
(waitlist listing, waitlist position, realtime statistics).

API Endpoints:
- POST /classes
- GET /classes/{class_id}
- PUT /classes/{class_id}/capacity
- GET /classes/{class_id}/waitlist
- GET /classes/{class_id}/waitlist/{student_id}
- GET /classes/{class_id}/realtime-stats
"""
