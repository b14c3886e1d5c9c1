"""
FieldSync Scheduling Feed
Read-only source of scheduled work orders and their assignees.
The core never writes back to the feed.
"""

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleRecord:
    """One scheduled work order as published by the feed"""
    external_id: str
    type: str
    planned_at: Optional[str]
    assignee: str
    client: Optional[str] = None
    point_code: Optional[str] = None
    locker_version: Optional[str] = None
    initial_issue: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_feed(cls, raw: dict) -> "ScheduleRecord":
        """Build from the feed's wire shape (camelCase keys)"""
        return cls(
            external_id=str(raw["externalId"]),
            type=raw.get("type", "maintenance"),
            planned_at=raw.get("plannedAt"),
            assignee=raw["assigneeIdentifier"],
            client=raw.get("client"),
            point_code=raw.get("pointCode"),
            locker_version=raw.get("lockerVersion"),
            initial_issue=raw.get("initialIssue"),
            address=raw.get("address"),
        )


class ScheduleFeed:
    """Interface of the scheduling feed collaborator"""

    def fetch(self, external_id: str) -> Optional[ScheduleRecord]:
        raise NotImplementedError

    def fetch_for_assignee(self, assignee: str) -> list[ScheduleRecord]:
        raise NotImplementedError


class StaticScheduleFeed(ScheduleFeed):
    """Feed over a fixed list of records, ordered by planned date"""

    def __init__(self, records: list[ScheduleRecord]):
        self._records = {r.external_id: r for r in records}

    def fetch(self, external_id: str) -> Optional[ScheduleRecord]:
        return self._records.get(external_id)

    def fetch_for_assignee(self, assignee: str) -> list[ScheduleRecord]:
        mine = [r for r in self._records.values() if r.assignee == assignee]
        return sorted(mine, key=lambda r: r.planned_at or "")


class JsonScheduleFeed(StaticScheduleFeed):
    """Feed loaded from a JSON export: a list of wire-shaped records"""

    def __init__(self, path: str):
        self.path = Path(path)
        with open(self.path, encoding="utf-8") as f:
            raw_records = json.load(f)
        super().__init__([ScheduleRecord.from_feed(r) for r in raw_records])
        logger.info(f"Loaded {len(self._records)} scheduled work orders from {self.path}")


class MockScheduleFeed(StaticScheduleFeed):
    """Built-in schedule for development without the real feed"""

    def __init__(self, assignee: str = "tech@fieldsync.dev"):
        now = datetime.now(timezone.utc)
        super().__init__([
            ScheduleRecord(
                external_id="88123",
                type="battery_swap",
                planned_at=(now - timedelta(days=2)).isoformat(),
                assignee=assignee,
                client="Inpost",
                point_code="BCN-001",
                locker_version="Inpost14163",
                initial_issue="Battery Alert - Bat1: 84.2%/13.1V | Bat2: 94.4%/12V",
            ),
            ScheduleRecord(
                external_id="88235",
                type="maintenance",
                planned_at=now.isoformat(),
                assignee=assignee,
                client="VintedGo",
                point_code="MAD-015",
                locker_version="V3",
                initial_issue="Screen is black - not responding to touch",
            ),
            ScheduleRecord(
                external_id="88301",
                type="wind_audit",
                planned_at=(now + timedelta(days=1)).isoformat(),
                assignee=assignee,
                client="Inpost",
                point_code="VLC-007",
                locker_version="Inpost14163",
                initial_issue="Annual wind resistance audit",
            ),
        ])


def build_schedule_feed(use_mock: bool, feed_path: Optional[str] = None) -> ScheduleFeed:
    """Choose the feed implementation from explicit configuration values"""
    if use_mock:
        logger.info("Using mock schedule feed")
        return MockScheduleFeed()
    if feed_path:
        return JsonScheduleFeed(feed_path)
    logger.warning("No schedule feed configured; no work orders can be started")
    return StaticScheduleFeed([])
