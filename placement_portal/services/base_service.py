"""
Shared wiring for the domain services: the database handle, the loaded
platform settings, the stats projector and the two fire-and-forget
collaborators (activity log, notifications).
"""

from typing import Optional

from pymongo.database import Database

from placement_portal.db.mongodb import get_mongo_db
from placement_portal.services.activity_log import ActivityLogger
from placement_portal.services.events import Outcome, StatsProjector
from placement_portal.services.notifications import Notifier
from placement_portal.services.settings_service import PlatformSettings


class DomainService:

    def __init__(self, db: Optional[Database] = None, platform: Optional[PlatformSettings] = None):
        self.db = db if db is not None else get_mongo_db()
        self.platform = platform if platform is not None else PlatformSettings()
        self.projector = StatsProjector(self.db)
        self.activity = ActivityLogger(self.db)
        self.notifier = Notifier(self.db)

    def _commit(self, outcome: Outcome) -> Outcome:
        """Project the counter deltas of an operation whose source write already succeeded."""
        self.projector.apply(outcome.events)
        return outcome
