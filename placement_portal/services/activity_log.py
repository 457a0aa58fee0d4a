"""
Activity-log collaborator.

Every state-mutating operation records (actor, action, target) here after
it succeeded. Logging is fire-and-forget: a failed insert is reported as a
warning and never fails the primary operation.
"""

import logging
from typing import Optional, Dict, Any

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from placement_portal.services.mongo_service import ActivityLogRepository

logger = logging.getLogger(__name__)


class ActivityLogger:

    def __init__(self, db: Optional[Database] = None):
        self.repo = ActivityLogRepository(db)

    def log(self, actor_id: Optional[ObjectId], action: str, target_model: Optional[str] = None,
            target_id: Optional[ObjectId] = None, metadata: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.repo.insert({
                "user": actor_id,
                "action": action,
                "target_model": target_model,
                "target_id": target_id,
                "metadata": metadata or {},
            })
        except PyMongoError as e:
            logger.warning("Activity log %s by %s not recorded: %s", action, actor_id, e)
