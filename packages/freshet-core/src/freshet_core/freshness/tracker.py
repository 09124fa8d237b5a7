"""Freshness tracker: owns every mutation of FreshnessRecord."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from freshet_core.clock import Clock, utcnow
from freshet_core.errors import NotFoundError, ValidationError
from freshet_core.freshness.models import (
    ArchiveResult,
    FreshnessCheck,
    FreshnessPolicy,
    FreshnessRecord,
    FreshnessStatistics,
    PriorityLevel,
)
from freshet_core.freshness.scoring import clamp_score, hours_since, score_record

if TYPE_CHECKING:
    from freshet_core.config.models import FreshnessConfig
    from freshet_core.interfaces.store import ItemStore

logger = logging.getLogger(__name__)

_PATCHABLE_FIELDS = frozenset(FreshnessRecord.model_fields) - {"item_id"}


class PolicyRegistry:
    """Looks policies up by name, falling back to the configured default."""

    def __init__(self, policies: Mapping[str, FreshnessPolicy], default_policy: str = "default") -> None:
        self._policies = dict(policies)
        self.default_policy = default_policy

    @classmethod
    def from_config(cls, config: FreshnessConfig) -> PolicyRegistry:
        return cls(config.policies, config.default_policy)

    def names(self) -> list[str]:
        return sorted(self._policies)

    def get(self, name: str | None = None) -> FreshnessPolicy:
        if name and name in self._policies:
            return self._policies[name]
        if name and name != self.default_policy:
            logger.warning(
                "Unknown freshness policy, using default",
                extra={"policy": name, "default_policy": self.default_policy},
            )
        if self.default_policy in self._policies:
            return self._policies[self.default_policy]
        raise NotFoundError("freshness policy", self.default_policy)


def needs_update(
    record: FreshnessRecord,
    policy: FreshnessPolicy,
    score: float,
    now: datetime,
    critical_score: float = 30.0,
) -> bool:
    """Scheduling decision, kept apart from scoring so each can change on its own."""
    if score < critical_score:
        return True
    if record.last_checked is None:
        return True
    if hours_since(record.last_checked, now) >= policy.check_frequency_hours:
        return True
    if record.status_code is not None and record.status_code >= 400:
        return True
    return False


class FreshnessTracker:
    """Computes, persists, and queries per-item freshness state."""

    def __init__(
        self,
        store: ItemStore,
        policies: PolicyRegistry,
        stale_score: float = 50.0,
        critical_score: float = 30.0,
        clock: Clock = utcnow,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.store = store
        self.policies = policies
        self.stale_score = stale_score
        self.critical_score = critical_score
        self.clock = clock
        self.log = log or logger

    async def check_freshness(self, item_id: str) -> FreshnessRecord:
        """Point lookup. Raises NotFoundError for untracked items."""
        record = await self.store.get_freshness(item_id)
        if record is None:
            raise NotFoundError("freshness record", item_id)
        return record

    async def start_tracking(
        self,
        item_id: str,
        priority: PriorityLevel = PriorityLevel.normal,
        policy: str | None = None,
    ) -> FreshnessRecord:
        """Create the record for a newly tracked item, scored as never checked."""
        record = FreshnessRecord(item_id=item_id, priority=priority, policy=policy)
        score = score_record(record, self.policies.get(policy), self.clock())
        record = record.model_copy(update={"score": score, "is_stale": score < self.stale_score})
        await self.store.save_freshness(record)
        self.log.info("Tracking item", extra={"item_id": item_id, "score": round(score, 2)})
        return record

    async def update_freshness_status(self, item_id: str, patch: dict[str, Any]) -> None:
        """Partial update. Stamping ``last_checked`` is the caller's job."""
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown freshness fields: {', '.join(sorted(unknown))}")
        fields = dict(patch)
        if "score" in fields:
            fields["score"] = clamp_score(float(fields["score"]))
            fields.setdefault("is_stale", fields["score"] < self.stale_score)
        if isinstance(fields.get("priority"), PriorityLevel):
            fields["priority"] = fields["priority"].value
        await self.store.update_freshness(item_id, fields)

    async def record_check(
        self,
        item_id: str,
        status_code: int | None = None,
        content_updated: bool = False,
    ) -> FreshnessRecord:
        """Stamp a completed source check and rescore from the new timestamps."""
        record = await self.check_freshness(item_id)
        now = self.clock()
        update: dict[str, Any] = {"last_checked": now}
        if status_code is not None:
            update["status_code"] = status_code
        if content_updated:
            update["last_updated"] = now
        record = record.model_copy(update=update)
        score = score_record(record, self.policies.get(record.policy), now)
        update.update(score=score, is_stale=score < self.stale_score)
        await self.store.update_freshness(item_id, update)
        return record.model_copy(update={"score": score, "is_stale": score < self.stale_score})

    async def get_stale_items(self, threshold_score: float = 50.0, limit: int = 100) -> list[FreshnessRecord]:
        """Non-archived records scoring below *threshold_score*, most stale first."""
        return await self.store.list_freshness(max_score=threshold_score, limit=limit)

    async def compute_and_persist(self, item_id: str) -> FreshnessCheck:
        """Rescore one item, stamp the check time, and report whether it needs a refresh."""
        record = await self.check_freshness(item_id)
        policy = self.policies.get(record.policy)
        now = self.clock()

        new_score = score_record(record, policy, now)
        update = needs_update(record, policy, new_score, now, self.critical_score)
        is_stale = new_score < self.stale_score

        await self.store.update_freshness(
            item_id,
            {"score": new_score, "is_stale": is_stale, "last_checked": now},
        )
        self.log.debug(
            "Freshness computed",
            extra={"item_id": item_id, "score": round(new_score, 2), "needs_update": update},
        )
        return FreshnessCheck(
            item_id=item_id,
            previous_score=record.score,
            new_score=new_score,
            needs_update=update,
            is_stale=is_stale,
            checked_at=now,
        )

    async def rescore_all(self) -> int:
        """Recompute every non-archived score without touching check timestamps."""
        now = self.clock()
        count = 0
        for record in await self.store.list_freshness():
            score = score_record(record, self.policies.get(record.policy), now)
            await self.store.update_freshness(
                record.item_id, {"score": score, "is_stale": score < self.stale_score}
            )
            count += 1
        self.log.info("Rescored items", extra={"count": count})
        return count

    async def archive_stale(self, threshold_hours: float = 720) -> ArchiveResult:
        """Archive stale items not checked within *threshold_hours*. Irreversible."""
        now = self.clock()
        count = await self.store.archive_freshness(
            checked_before=now - timedelta(hours=threshold_hours),
            archived_at=now,
        )
        self.log.info("Archived stale items", extra={"count": count, "threshold_hours": threshold_hours})
        return ArchiveResult(archived_count=count, threshold_hours=threshold_hours, archived_at=now)

    async def statistics(self, fresh_score: float = 70.0) -> FreshnessStatistics:
        records = await self.store.list_freshness()
        total = len(records)
        if total == 0:
            return FreshnessStatistics()
        fresh = sum(1 for r in records if r.score >= fresh_score)
        stale = sum(1 for r in records if r.is_stale)
        average = sum(r.score for r in records) / total
        return FreshnessStatistics(
            total=total,
            fresh=fresh,
            stale=stale,
            average_score=round(average, 2),
            fresh_percentage=round(fresh / total * 100),
            stale_percentage=round(stale / total * 100),
        )
