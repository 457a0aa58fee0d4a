"""
Domain events and the stats projector.

Services never touch `stats.*` directly. A state-mutating operation returns
the events it caused, and only after its compare-and-set write on the source
document succeeded, so a lost race or a replayed request emits nothing.
StatsProjector turns each event into one `$inc` per affected document.

The counters are advisory caches; StatsReconciler (stats_service.py)
recomputes them from the source documents.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, List, Iterable, Tuple, Dict

from bson import ObjectId
from pymongo.database import Database

from placement_portal.db.mongodb import get_mongo_db, COLLECTIONS

logger = logging.getLogger(__name__)


class DomainEvent:
    """Base class; subclasses list their counter deltas in `deltas()`."""

    def deltas(self) -> List[Tuple[str, ObjectId, Dict[str, int]]]:
        raise NotImplementedError


# ============================================================
# APPLICATION EVENTS
# ============================================================

@dataclass(frozen=True)
class ApplicationCreated(DomainEvent):
    application_id: ObjectId
    job_id: ObjectId

    def deltas(self):
        return [("jobs", self.job_id, {"stats.total_applications": 1})]


@dataclass(frozen=True)
class ApplicationShortlisted(DomainEvent):
    application_id: ObjectId
    job_id: ObjectId

    def deltas(self):
        return [("jobs", self.job_id, {"stats.shortlisted": 1})]


@dataclass(frozen=True)
class ApplicationHired(DomainEvent):
    application_id: ObjectId
    job_id: ObjectId
    student_id: ObjectId
    company_id: ObjectId
    college_id: Optional[ObjectId] = None
    # False when the student was already placed elsewhere
    first_placement: bool = True

    def deltas(self):
        changes = [
            ("jobs", self.job_id, {"stats.hired": 1}),
            ("companies", self.company_id, {"stats.total_hires": 1}),
        ]
        if self.first_placement and self.college_id is not None:
            changes.append(("colleges", self.college_id, {"stats.placed_students": 1}))
        return changes


# ============================================================
# JOB EVENTS
# ============================================================

@dataclass(frozen=True)
class JobPosted(DomainEvent):
    job_id: ObjectId
    company_id: ObjectId
    is_open: bool

    def deltas(self):
        inc = {"stats.total_jobs_posted": 1}
        if self.is_open:
            inc["stats.active_jobs"] = 1
        return [("companies", self.company_id, inc)]


@dataclass(frozen=True)
class JobOpened(DomainEvent):
    job_id: ObjectId
    company_id: ObjectId

    def deltas(self):
        return [("companies", self.company_id, {"stats.active_jobs": 1})]


@dataclass(frozen=True)
class JobClosed(DomainEvent):
    """An open job moved to any non-open status (or was deleted)."""
    job_id: ObjectId
    company_id: ObjectId
    status: str

    def deltas(self):
        return [("companies", self.company_id, {"stats.active_jobs": -1})]


# ============================================================
# STUDENT EVENTS
# ============================================================

@dataclass(frozen=True)
class StudentAdded(DomainEvent):
    student_id: ObjectId
    college_id: ObjectId
    is_verified: bool = False

    def deltas(self):
        inc = {"stats.total_students": 1}
        if self.is_verified:
            inc["stats.verified_students"] = 1
        return [("colleges", self.college_id, inc)]


@dataclass(frozen=True)
class StudentVerified(DomainEvent):
    student_id: ObjectId
    college_id: ObjectId

    def deltas(self):
        return [("colleges", self.college_id, {"stats.verified_students": 1})]


@dataclass(frozen=True)
class StudentUnverified(DomainEvent):
    """A verified student was rejected afterwards."""
    student_id: ObjectId
    college_id: ObjectId

    def deltas(self):
        return [("colleges", self.college_id, {"stats.verified_students": -1})]


@dataclass(frozen=True)
class StudentPlacementChanged(DomainEvent):
    """Administrative override moved a student into or out of `placed`."""
    student_id: ObjectId
    college_id: ObjectId
    placed: bool

    def deltas(self):
        return [("colleges", self.college_id, {"stats.placed_students": 1 if self.placed else -1})]


@dataclass(frozen=True)
class StudentRemoved(DomainEvent):
    student_id: ObjectId
    college_id: ObjectId
    was_verified: bool = False
    was_placed: bool = False

    def deltas(self):
        inc = {"stats.total_students": -1}
        if self.was_verified:
            inc["stats.verified_students"] = -1
        if self.was_placed:
            inc["stats.placed_students"] = -1
        return [("colleges", self.college_id, inc)]


# ============================================================
# PROJECTOR
# ============================================================

class StatsProjector:
    """Applies counter deltas for a batch of events."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_mongo_db()

    def apply(self, events: Iterable[DomainEvent]) -> int:
        """Apply every event once; returns the number of `$inc` writes issued."""
        writes = 0
        for event in events:
            for collection, doc_id, inc in event.deltas():
                if doc_id is None:
                    continue
                self.db[COLLECTIONS[collection]].update_one({"_id": doc_id}, {"$inc": inc})
                writes += 1
            logger.debug("Projected %s", event)
        return writes


@dataclass
class Outcome:
    """Result of a state-mutating operation: the written document and the events it caused."""
    doc: dict
    events: List[DomainEvent] = field(default_factory=list)
