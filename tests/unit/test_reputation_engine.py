"""
Unit tests for ReputationEngine
"""

import asyncio
import pytest
from contextlib import asynccontextmanager
from uuid import uuid4

from backend.config.database import ReputationConfig
from backend.models.persona_activity import ActivityType, TaskSize, WorkItemRef
from backend.models.project_persona import ProjectPersonaUpdate
from backend.repositories.memory_repository import InMemoryPersonaRepository
from backend.services.errors import (
    InvalidPersonaStateError,
    LedgerInconsistencyError,
    PersistenceFailureError,
    PersonaNotFoundError,
    QuotaExceededError,
    TransientPersistenceError
)
from backend.services.reputation_engine import ReputationEngine
from tests.fixtures.personas import build_persona, build_template


class YieldingRepository(InMemoryPersonaRepository):
    """Suspends inside every unit so concurrent events interleave"""

    @asynccontextmanager
    async def persona_unit(self, persona_id):
        async with super().persona_unit(persona_id) as unit:
            await asyncio.sleep(0)
            yield unit
            await asyncio.sleep(0)


class FlakyRepository(InMemoryPersonaRepository):
    """Fails the first `failures` commits with a retryable error"""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.commit_attempts = 0

    def _commit(self, unit):
        self.commit_attempts += 1
        if self.commit_attempts <= self.failures:
            raise TransientPersistenceError("serialization failure")
        super()._commit(unit)


async def _seed(store, **persona_overrides):
    template = await store.create_template(build_template())
    return await store.create_persona(build_persona(template, **persona_overrides))


@pytest.mark.asyncio
class TestRecordEvent:
    """Test event application"""

    async def test_kudos_end_to_end(self, engine, persona, store):
        """Test three kudos land at (15, 6) and the fourth is rejected"""
        for _ in range(3):
            await engine.record_event(
                persona.id, ActivityType.KUDOS_RECEIVED, 5, 2, "great work", daily_limit=3
            )

        stored = await store.get_persona(persona.id)
        assert (stored.professionalism_score, stored.quality_score) == (15, 6)
        assert stored.kudos_quota_used == 3
        assert len(await engine.list_recent(persona.id)) == 3

        with pytest.raises(QuotaExceededError):
            await engine.record_event(
                persona.id, ActivityType.KUDOS_RECEIVED, 5, 2, "great work", daily_limit=3
            )

        stored = await store.get_persona(persona.id)
        assert (stored.professionalism_score, stored.quality_score) == (15, 6)
        assert stored.kudos_quota_used == 3
        assert len(await engine.list_recent(persona.id)) == 3

    async def test_result_carries_persona_and_entry(self, engine, persona, clock):
        task_id = uuid4()

        result = await engine.record_event(
            persona.id,
            ActivityType.TASK_COMPLETED,
            2.0,
            3.0,
            "Shipped login",
            metadata={"pr": 42},
            work_item=WorkItemRef(task_id=task_id, title="Login", size=TaskSize.STANDARD)
        )

        assert result.persona.professionalism_score == 2.0
        assert result.persona.quality_score == 3.0
        assert result.persona.updated_at == clock.now()
        assert result.activity.professionalism_change == 2.0
        assert result.activity.quality_change == 3.0
        assert result.activity.task_id == task_id
        assert result.activity.metadata == {"pr": 42}

    async def test_scores_are_not_clamped(self, engine, persona):
        result = await engine.record_event(
            persona.id, ActivityType.SCORE_ADJUSTMENT, -40.0, -0.5, "Reset after incident"
        )

        assert result.persona.professionalism_score == -40.0
        assert result.persona.quality_score == -0.5

    async def test_sum_invariant(self, engine, persona, store):
        """Test scores equal the sum of ledger deltas after mixed events"""
        events = [
            (ActivityType.TASK_COMPLETED, 1.5, 0.25),
            (ActivityType.KUDOS_RECEIVED, 5.0, 2.0),
            (ActivityType.WTF_RECEIVED, -2.0, -1.0),
            (ActivityType.PROCESS_VIOLATION, -3.0, 0.0),
            (ActivityType.QUALITY_ISSUE, 0.0, -3.0),
            (ActivityType.SCORE_ADJUSTMENT, 0.1, 0.2),
        ]
        for activity_type, prof, qual in events:
            await engine.record_event(persona.id, activity_type, prof, qual, "event")

        stored = await store.get_persona(persona.id)
        ledger = await engine.list_recent(persona.id, limit=100)

        assert stored.professionalism_score == pytest.approx(sum(e.professionalism_change for e in ledger))
        assert stored.quality_score == pytest.approx(sum(e.quality_change for e in ledger))
        assert await engine.audit_persona(persona.id) == pytest.approx((1.6, -1.55))

    async def test_kudos_limit_from_template(self, engine, make_template, make_persona):
        template = await make_template(kudos_quota_daily=2)
        persona = await make_persona(template)

        for _ in range(2):
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 1, "nice")

        with pytest.raises(QuotaExceededError) as exc_info:
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 1, "nice")
        assert exc_info.value.limit == 2

    async def test_unlimited_kudos_template(self, engine, make_template, make_persona):
        template = await make_template(kudos_quota_daily=-1)
        persona = await make_persona(template)

        for _ in range(20):
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 0, "nice")

        assert (await engine.store.get_persona(persona.id)).kudos_quota_used == 20

    async def test_any_negative_limit_is_unlimited(self, engine, persona):
        for _ in range(5):
            await engine.record_event(persona.id, ActivityType.WTF_RECEIVED, -1, -1, "x", daily_limit=-2)

        stored = await engine.store.get_persona(persona.id)
        assert stored.wtf_quota_used == 5
        assert stored.professionalism_score == -5

    async def test_wtf_limit_from_config(self, engine, persona):
        for _ in range(engine.config.wtf_quota_daily):
            await engine.record_event(persona.id, ActivityType.WTF_RECEIVED, -1, -1, "why")

        with pytest.raises(QuotaExceededError):
            await engine.record_event(persona.id, ActivityType.WTF_RECEIVED, -1, -1, "why")

    async def test_ungated_events_ignore_quota(self, engine, persona):
        for _ in range(10):
            await engine.record_event(persona.id, ActivityType.PROCESS_VIOLATION, -1, 0, "skipped review")

        stored = await engine.store.get_persona(persona.id)
        assert stored.kudos_quota_used == 0
        assert stored.wtf_quota_used == 0

    async def test_quota_resets_after_window(self, engine, persona, clock, store):
        for _ in range(3):
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 0, "k", daily_limit=3)
        with pytest.raises(QuotaExceededError):
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 0, "k", daily_limit=3)

        clock.advance(hours=24)
        result = await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 1, 0, "k", daily_limit=3)

        assert result.persona.kudos_quota_used == 1
        assert result.persona.last_quota_reset == clock.now()
        assert (await store.get_persona(persona.id)).professionalism_score == 4

    async def test_missing_persona(self, engine):
        with pytest.raises(PersonaNotFoundError):
            await engine.record_event(uuid4(), ActivityType.TASK_COMPLETED, 1, 1, "ghost")

    async def test_inactive_persona_cannot_be_assigned(self, engine, persona, store, project_id, clock):
        await store.update_persona_profile(project_id, persona.id, ProjectPersonaUpdate(is_active=False), clock.now())

        with pytest.raises(InvalidPersonaStateError):
            await engine.record_event(persona.id, ActivityType.TASK_ASSIGNED, 0, 0, "new task")

        # Administrative adjustments still apply
        result = await engine.record_event(persona.id, ActivityType.SCORE_ADJUSTMENT, 1, 0, "fix")
        assert result.persona.professionalism_score == 1
        assert len(await engine.list_recent(persona.id)) == 1

    async def test_profile_edits_survive_events(self, engine, persona, store, project_id, clock):
        await store.update_persona_profile(
            project_id, persona.id, ProjectPersonaUpdate(custom_name="Alice"), clock.now()
        )

        await engine.record_event(persona.id, ActivityType.TASK_COMPLETED, 1, 1, "done")

        assert (await store.get_persona(persona.id)).custom_name == "Alice"

    async def test_non_finite_delta_rejected(self, engine, persona):
        with pytest.raises(ValueError):
            await engine.record_event(persona.id, ActivityType.SCORE_ADJUSTMENT, float("nan"), 0, "bad")


@pytest.mark.asyncio
class TestConcurrency:
    """Test per-persona serialization"""

    async def test_no_double_consumption(self, clock, reputation_config):
        store = YieldingRepository()
        persona = await _seed(store)
        engine = ReputationEngine(store, config=reputation_config, clock=clock)

        results = await asyncio.gather(
            *[
                engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 5, 2, "kudos", daily_limit=3)
                for _ in range(8)
            ],
            return_exceptions=True
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(successes) == 3
        assert len(failures) == 5

        stored = await store.get_persona(persona.id)
        assert stored.kudos_quota_used == 3
        assert (stored.professionalism_score, stored.quality_score) == (15, 6)
        assert len(store.activities[persona.id]) == 3
        assert len(engine.locks) == 0

    async def test_different_personas_in_parallel(self, clock, reputation_config):
        store = YieldingRepository()
        first = await _seed(store)
        second = await _seed(store)
        engine = ReputationEngine(store, config=reputation_config, clock=clock)

        await asyncio.gather(*[
            engine.record_event(p.id, ActivityType.TASK_COMPLETED, 1, 1, "done")
            for p in (first, second, first, second)
        ])

        assert (await store.get_persona(first.id)).professionalism_score == 2
        assert (await store.get_persona(second.id)).professionalism_score == 2


@pytest.mark.asyncio
class TestPersistenceRetries:
    """Test retry and rollback on commit failure"""

    async def test_transient_failure_is_retried(self, clock, reputation_config):
        store = FlakyRepository(failures=2)
        persona = await _seed(store)
        engine = ReputationEngine(store, config=reputation_config, clock=clock)

        result = await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 5, 2, "kudos")

        assert store.commit_attempts == 3
        assert result.persona.kudos_quota_used == 1
        stored = await store.get_persona(persona.id)
        assert stored.kudos_quota_used == 1
        assert stored.professionalism_score == 5
        assert len(store.activities[persona.id]) == 1

    async def test_exhausted_retries(self, clock, reputation_config):
        store = FlakyRepository(failures=100)
        persona = await _seed(store)
        engine = ReputationEngine(store, config=reputation_config, clock=clock)

        with pytest.raises(PersistenceFailureError):
            await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 5, 2, "kudos")

        assert store.commit_attempts == reputation_config.event_max_retries
        stored = await store.get_persona(persona.id)
        assert stored.kudos_quota_used == 0
        assert stored.professionalism_score == 0
        assert store.activities[persona.id] == []


@pytest.mark.asyncio
class TestScoredActivities:
    """Test events scored from the rule book"""

    async def test_small_task_completed(self, engine, persona):
        result = await engine.record_scored_activity(persona.id, ActivityType.TASK_COMPLETED, "done")

        assert (result.activity.professionalism_change, result.activity.quality_change) == (1.0, 1.0)

    async def test_size_from_work_item(self, engine, persona):
        result = await engine.record_scored_activity(
            persona.id,
            ActivityType.TASK_COMPLETED,
            "done",
            work_item=WorkItemRef(task_id=uuid4(), title="Epic", size=TaskSize.STANDARD)
        )

        assert (result.persona.professionalism_score, result.persona.quality_score) == (2.0, 3.0)
        assert result.activity.task_size == TaskSize.STANDARD

    async def test_unscored_type(self, engine, persona):
        result = await engine.record_scored_activity(persona.id, ActivityType.IMPORTED, "seeded")

        assert result.persona.professionalism_score == 0.0

    async def test_requires_rule_book(self, store, clock, reputation_config, persona):
        engine = ReputationEngine(store, config=reputation_config, clock=clock)

        with pytest.raises(RuntimeError):
            await engine.record_scored_activity(persona.id, ActivityType.TASK_COMPLETED, "done")


@pytest.mark.asyncio
class TestReputationReadModel:
    """Test reputation summary and audit"""

    async def test_get_reputation(self, engine, persona, clock):
        await engine.record_event(persona.id, ActivityType.KUDOS_RECEIVED, 10, 30, "wow")

        summary = await engine.get_reputation(persona.id)

        assert summary["scores"]["professionalism"]["tier"] == "Senior"
        assert summary["scores"]["quality"]["tier"] == "Elite"
        assert summary["quota"]["kudos_received"] == {"used": 1, "limit": 5, "remaining": 4}
        assert summary["quota"]["wtf_received"]["remaining"] == 3

        clock.advance(days=1)
        summary = await engine.get_reputation(persona.id)
        assert summary["quota"]["kudos_received"]["used"] == 0

    async def test_get_reputation_negative_config_limit(self, store, clock, persona):
        engine = ReputationEngine(store, config=ReputationConfig(wtf_quota_daily=-3), clock=clock)
        await engine.record_event(persona.id, ActivityType.WTF_RECEIVED, -1, -1, "why")

        summary = await engine.get_reputation(persona.id)

        assert summary["quota"]["wtf_received"] == {"used": 1, "limit": -3, "remaining": None}

    async def test_get_reputation_missing(self, engine):
        with pytest.raises(PersonaNotFoundError):
            await engine.get_reputation(uuid4())

    async def test_audit_detects_drift(self, engine, persona, store):
        await engine.record_event(persona.id, ActivityType.TASK_COMPLETED, 1, 1, "done")
        store.personas[persona.id] = store.personas[persona.id].model_copy(
            update={"professionalism_score": 99.0}
        )

        with pytest.raises(LedgerInconsistencyError):
            await engine.audit_persona(persona.id)

        assert issubclass(LedgerInconsistencyError, AssertionError)
