"""
gangledger.api.routes.public — Read-only public endpoints
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from gangledger.api.deps import ConfigDep, EngineDep
from gangledger.services.aggregation_service import (
    MAX_PAGE_SIZE,
    count_ranked_members,
    group_summary,
    member_profile,
    top_groups,
    top_members,
)

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# GET /leaderboard/members
# ---------------------------------------------------------------------------
@router.get("/leaderboard/members")
def get_member_leaderboard(
    engine: EngineDep,
    cfg: ConfigDep,
    weekly: bool = False,
    group_id: str | None = None,
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    """Members with a positive score, highest first."""
    rows = top_members(
        engine, cfg.guild_id, group_id=group_id, weekly=weekly, limit=limit, offset=offset,
    )
    total = count_ranked_members(engine, cfg.guild_id, group_id=group_id, weekly=weekly)
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "weekly": weekly,
        "members": [r.to_dict() for r in rows],
    }


# ---------------------------------------------------------------------------
# GET /leaderboard/groups
# ---------------------------------------------------------------------------
@router.get("/leaderboard/groups")
def get_group_leaderboard(engine: EngineDep, cfg: ConfigDep, weekly: bool = False):
    rows = top_groups(engine, cfg.guild_id, weekly=weekly)
    return {"weekly": weekly, "groups": [r.to_dict() for r in rows]}


# ---------------------------------------------------------------------------
# GET /groups/{group_id}
# ---------------------------------------------------------------------------
@router.get("/groups/{group_id}")
def get_group(
    group_id: str,
    engine: EngineDep,
    cfg: ConfigDep,
    weekly: bool = False,
    top: int = Query(5, ge=1, le=25),
):
    return group_summary(engine, cfg.guild_id, group_id, top=top, weekly=weekly)


# ---------------------------------------------------------------------------
# GET /members/{member_id}
# ---------------------------------------------------------------------------
@router.get("/members/{member_id}")
def get_member(member_id: str, engine: EngineDep, cfg: ConfigDep):
    return member_profile(engine, cfg.guild_id, member_id)
