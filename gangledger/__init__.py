"""
GangLedger — Points Ledger & Gang Leaderboards for Discord
============================================================
Tallies per-member and per-gang activity and manually awarded points,
serves lifetime and weekly leaderboards, and rolls weekly tallies over on
a schedule.

Package layout::

    gangledger/
    ├── config.py          # YAML → typed Python config (gangs, categories)
    ├── constants.py       # Shared constants (categories, filler list)
    ├── errors.py          # NotFound / Validation / Conflict / StoreUnavailable
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Member, MemberGroupPoints, Group, ActivityLog
    │   ├── seed.py        # Gang seeding + orphan cleanup
    │   └── store.py       # EntityStore: per-entity atomic read-modify-write
    ├── engine/
    │   ├── events.py      # Inbound request envelopes
    │   ├── ledger.py      # Pure points arithmetic (breakdowns, clamps)
    │   └── activity.py    # Pure message rate-limit rules
    ├── services/
    │   ├── ledger_service.py      # Member / gang point awards
    │   ├── membership_service.py  # Gang switching + registration
    │   ├── activity_service.py    # Message → activity point pipeline
    │   ├── aggregation_service.py # Gang caches + leaderboards
    │   ├── rollover_service.py    # Weekly / full resets
    │   ├── audit_service.py       # Activity log queries
    │   └── embeds.py              # Discord embed builders
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/          # activity, membership, leaderboard, admin, tasks
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Public leaderboards + admin mutations
"""

__version__ = "0.1.0"
