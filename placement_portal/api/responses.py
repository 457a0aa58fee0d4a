"""
Response envelopes shared by every route module.

    {"success": true, "data": ..., "message": ...}
    {"success": true, "data": [...], "pagination": {...}}
"""

from typing import Any, Dict, List, Optional

from placement_portal.services.mongo_service import serialize_doc, serialize_docs


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": serialize_doc(data)}
    if message:
        body["message"] = message
    return body


def paged(docs: List[dict], pager: Dict[str, int]) -> dict:
    return {"success": True, "data": serialize_docs(docs), "pagination": pager}


def done(message: str) -> dict:
    return {"success": True, "message": message}
