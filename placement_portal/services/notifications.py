"""
Notification collaborator.

Services emit a semantic notification type with a recipient user id and a
payload; the template turns it into a stored title/message. Delivery
(email, push) happens elsewhere. Storing a notification is fire-and-forget:
a failure is logged and never fails the operation that caused it.
"""

import logging
from typing import Optional, Dict, Any, Callable

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from placement_portal.services.mongo_service import NotificationRepository

logger = logging.getLogger(__name__)


def _template(title: str, message: str, priority: str = "medium") -> Callable[[Dict[str, Any]], dict]:
    def render(payload: Dict[str, Any]) -> dict:
        return {
            "title": title.format(**payload),
            "message": message.format(**payload).strip(),
            "priority": priority,
        }
    return render


TEMPLATES = {
    "account_approved": _template(
        "Account Approved",
        "Your {role} account has been approved. You can now access the platform.",
        "high",
    ),
    "account_rejected": _template(
        "Account Rejected",
        "Your {role} account has been rejected. {reason}",
        "high",
    ),
    "student_verified": _template(
        "Profile Verified",
        "Your student profile has been verified by your college admin.",
    ),
    "shortlisted": _template(
        "You've Been Shortlisted!",
        "{company_name} has shortlisted you for {job_title}.",
        "high",
    ),
    "interview_scheduled": _template(
        "Interview Scheduled",
        "Your interview for {job_title} has been scheduled for {date}.",
        "high",
    ),
    "offer_received": _template(
        "Job Offer Received",
        "Congratulations! You have received an offer from {company_name} for {job_title}.",
        "high",
    ),
    "application_status": _template(
        "Application Status Update",
        "Your application for {job_title} has been {status}.",
        "high",
    ),
}

# Keys every template may reference; missing ones render as empty strings
_PAYLOAD_DEFAULTS = {
    "role": "", "reason": "", "company_name": "", "job_title": "", "date": "to be announced", "status": "",
}


class Notifier:

    def __init__(self, db: Optional[Database] = None):
        self.repo = NotificationRepository(db)

    def notify(self, recipient: Optional[ObjectId], notification_type: str,
               payload: Optional[Dict[str, Any]] = None, related_model: Optional[str] = None,
               related_id: Optional[ObjectId] = None) -> Optional[dict]:
        if recipient is None:
            return None
        render = TEMPLATES.get(notification_type)
        if render is None:
            logger.warning("Unknown notification type %s", notification_type)
            return None

        doc = {
            "recipient": recipient,
            "type": notification_type,
            **render({**_PAYLOAD_DEFAULTS, **(payload or {})}),
            "related_model": related_model,
            "related_id": related_id,
            "is_read": False,
            "read_at": None,
        }
        try:
            return self.repo.insert(doc)
        except PyMongoError as e:
            logger.warning("Could not store %s notification for %s: %s", notification_type, recipient, e)
            return None
