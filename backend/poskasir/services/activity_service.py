# Overview: Service-layer operations for the activity log; best-effort writes and filtered reads.

from __future__ import annotations

import math
import uuid
from datetime import date

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog, User
from ..time_utils import day_bounds
from .concurrency import fetch_all
from .pagination import page_offset


def log_activity(
    user_id: uuid.UUID | None,
    action_type: str,
    entity_type: str,
    entity_id,
    details: dict | None = None,
) -> None:
    """
    Append one audit entry in its own commit.

    The mutation being audited has already committed, so a failure here is
    rolled back and logged but never propagated to the caller.
    """
    try:
        db.session.add(ActivityLog(
            user_id=user_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=details or {},
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write activity log %s %s %s", action_type, entity_type, entity_id
        )


def _filtered_query(
    *,
    search: str | None,
    start: date | None,
    end: date | None,
    user_id: uuid.UUID | None,
    entity_type: str | None,
    action_type: str | None,
):
    query = db.session.query(ActivityLog).outerjoin(User, User.id == ActivityLog.user_id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(ActivityLog.entity_id.ilike(like), User.username.ilike(like)))
    if start and end:
        start_dt, end_dt = day_bounds(start, end)
        query = query.filter(ActivityLog.created_at >= start_dt, ActivityLog.created_at < end_dt)
    elif start:
        query = query.filter(ActivityLog.created_at >= day_bounds(start, start)[0])
    elif end:
        query = query.filter(ActivityLog.created_at < day_bounds(end, end)[1])
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if action_type:
        query = query.filter(ActivityLog.action_type == action_type)
    return query


def list_activity_logs(
    *,
    page: int,
    limit: int,
    search: str | None = None,
    start: date | None = None,
    end: date | None = None,
    user_id: uuid.UUID | None = None,
    entity_type: str | None = None,
    action_type: str | None = None,
) -> dict:
    filters = dict(
        search=search, start=start, end=end,
        user_id=user_id, entity_type=entity_type, action_type=action_type,
    )

    def _rows():
        rows = (
            _filtered_query(**filters)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
            .all()
        )
        return [row.to_dict() for row in rows]

    def _count():
        return _filtered_query(**filters).count()

    logs, total = fetch_all(_rows, _count)
    return {
        "logs": logs,
        "total_items": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "page": page,
        "limit": limit,
    }
