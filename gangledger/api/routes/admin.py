"""
gangledger.api.routes.admin — Admin endpoints (JWT‑protected)
==============================================================

Manual awards, the on-demand weekly rollover and full wipe, and the
activity-log export feed.  Ledger errors are turned into HTTP responses
by the handlers registered in :mod:`gangledger.api.main`.
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from gangledger.api.deps import AdminDep, ConfigDep, EngineDep, get_current_admin
from gangledger.database.models import TargetType
from gangledger.services.audit_service import list_activity
from gangledger.services.ledger_service import award_group_points, award_member_points
from gangledger.services.rollover_service import reset_all, reset_weekly

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class MemberAward(BaseModel):
    member_id: str
    points: int
    category: str = "other"
    display_name: str | None = None
    reason: str | None = None


class GroupAward(BaseModel):
    group_id: str
    points: int
    category: str = "other"
    reason: str | None = None


def _actor(admin: dict) -> tuple[str | None, str | None]:
    return admin.get("sub"), admin.get("username")


# ---------------------------------------------------------------------------
# POST /admin/award/member
# ---------------------------------------------------------------------------
@router.post("/award/member")
def post_member_award(body: MemberAward, engine: EngineDep, cfg: ConfigDep, admin: AdminDep):
    awarded_by, awarded_by_name = _actor(admin)
    member = award_member_points(
        engine,
        guild_id=cfg.guild_id,
        member_id=body.member_id,
        points=body.points,
        category=body.category,
        categories=cfg.member_categories,
        display_name=body.display_name,
        awarded_by=awarded_by,
        awarded_by_name=awarded_by_name,
        reason=body.reason,
    )
    bucket = member.current_bucket
    return {
        "member_id": member.member_id,
        "display_name": member.display_name,
        "group_id": member.current_group_id,
        "points": member.points,
        "weekly_points": member.weekly_points,
        "points_breakdown": dict(bucket.points_breakdown) if bucket else {},
    }


# ---------------------------------------------------------------------------
# POST /admin/award/group
# ---------------------------------------------------------------------------
@router.post("/award/group")
def post_group_award(body: GroupAward, engine: EngineDep, cfg: ConfigDep, admin: AdminDep):
    awarded_by, awarded_by_name = _actor(admin)
    group = award_group_points(
        engine,
        guild_id=cfg.guild_id,
        group_id=body.group_id,
        points=body.points,
        category=body.category,
        categories=cfg.group_categories,
        awarded_by=awarded_by,
        awarded_by_name=awarded_by_name,
        reason=body.reason,
    )
    return {
        "group_id": group.group_id,
        "name": group.name,
        "direct_points": group.direct_points,
        "weekly_direct_points": group.weekly_direct_points,
        "points_breakdown": dict(group.points_breakdown or {}),
    }


# ---------------------------------------------------------------------------
# POST /admin/rollover/weekly
# ---------------------------------------------------------------------------
@router.post("/rollover/weekly")
def post_weekly_rollover(engine: EngineDep, cfg: ConfigDep, admin: AdminDep):
    logger.info("Weekly rollover requested by %s", admin.get("username") or admin.get("sub"))
    return reset_weekly(engine, cfg.guild_id).to_dict()


# ---------------------------------------------------------------------------
# POST /admin/rollover/all
# ---------------------------------------------------------------------------
@router.post("/rollover/all")
def post_full_reset(engine: EngineDep, cfg: ConfigDep, admin: AdminDep):
    logger.warning("Full points wipe requested by %s", admin.get("username") or admin.get("sub"))
    return reset_all(engine, cfg.guild_id).to_dict()


# ---------------------------------------------------------------------------
# GET /admin/activity
# ---------------------------------------------------------------------------
@router.get("/activity")
def get_activity(
    engine: EngineDep,
    cfg: ConfigDep,
    since: datetime | None = None,
    until: datetime | None = None,
    target_id: str | None = None,
    target_type: TargetType | None = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Activity log page, oldest first, for exporters."""
    entries = list_activity(
        engine,
        cfg.guild_id,
        since=since,
        until=until,
        target_id=target_id,
        target_type=target_type,
        limit=limit,
        offset=offset,
    )
    return {"limit": limit, "offset": offset, "entries": entries}
