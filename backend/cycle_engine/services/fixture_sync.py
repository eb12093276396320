"""Keep fixture states and final results in step with the sports data vendor."""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker, insert_for
from cycle_engine.errors import TransientError
from cycle_engine.models import Cycle, Fixture, FixtureResult
from cycle_engine.schemas.outcomes import (
    FINISHED_STATES,
    LIVE_STATES,
    PRE_MATCH_STATES,
    STATE_RANK,
    FixtureState,
)
from cycle_engine.services.cycle.normaliser import normalise_score
from cycle_engine.timeutil import as_utc, utcnow

logger = structlog.get_logger()


def should_update_state(
    current: FixtureState,
    reported: FixtureState,
    starting_at: datetime,
    now: datetime,
    stuck_after: timedelta,
) -> tuple[bool, bool]:
    """Return (update, forced).

    A not-started or postponed fixture takes whatever the vendor reports.
    Once play has begun states only move forward, except that a fixture
    still live long after kickoff is overwritten with the vendor state.
    """
    if reported == current:
        return False, False
    if current in PRE_MATCH_STATES:
        return True, False
    if STATE_RANK[reported] > STATE_RANK[current]:
        return True, False
    if current in LIVE_STATES and now - starting_at >= stuck_after:
        return True, True
    return False, False


class FixtureSync:
    def __init__(
        self,
        fixture_source,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
    ):
        self.fixture_source = fixture_source
        self.session_maker = session_maker

    async def _cycle_fixture_ids(self, session: AsyncSession) -> set[int]:
        rows = await session.execute(
            select(Cycle.matches_data).where(Cycle.is_resolved.is_(False), Cycle.matches_data.is_not(None))
        )
        return {int(slot["fixture_id"]) for (slots,) in rows.all() for slot in slots}

    async def fixtures_to_poll(self, now: datetime) -> list[Fixture]:
        """Fixtures started in the poll window plus unfinished ones of open cycles."""
        window_start = now - timedelta(hours=settings.poll_window_hours)
        finished = [state.value for state in FINISHED_STATES] + [FixtureState.CANCELLED.value]
        async with self.session_maker() as session:
            cycle_ids = await self._cycle_fixture_ids(session)
            result = await session.execute(
                select(Fixture)
                .where(
                    Fixture.state.not_in(finished),
                    Fixture.starting_at <= now,
                    or_(Fixture.starting_at >= window_start, Fixture.fixture_id.in_(cycle_ids)),
                )
                .order_by(Fixture.starting_at)
            )
            return list(result.scalars().all())

    async def poll_fixture_states(self, now: datetime | None = None) -> dict:
        now = now or utcnow()
        stuck_after = timedelta(minutes=settings.stuck_fixture_minutes)
        fixtures = await self.fixtures_to_poll(now)

        updated = forced = errors = 0
        for fixture in fixtures:
            try:
                snapshot = await self.fixture_source.fixture_snapshot(fixture.fixture_id)
            except TransientError as e:
                errors += 1
                logger.warning("Fixture state fetch failed", fixture_id=fixture.fixture_id, error=str(e))
                continue

            current = FixtureState(fixture.state)
            starting_at = as_utc(fixture.starting_at)
            update, force = should_update_state(current, snapshot.state, starting_at, now, stuck_after)
            async with self.session_maker() as session:
                async with session.begin():
                    row = await session.get(Fixture, fixture.fixture_id)
                    row.state_checked_at = now
                    if update:
                        row.state = snapshot.state.value
            if force:
                forced += 1
                logger.warning(
                    "Forced state of stuck fixture",
                    fixture_id=fixture.fixture_id,
                    old=current.value,
                    new=snapshot.state.value,
                    minutes_since_kickoff=int((now - starting_at).total_seconds() // 60),
                )
            elif update:
                logger.info("Fixture state changed", fixture_id=fixture.fixture_id, old=current.value, new=snapshot.state.value)
            if update:
                updated += 1

        return {"status": "completed", "polled": len(fixtures), "updated": updated, "forced": forced, "errors": errors}

    async def fetch_results(self) -> dict:
        """Store normalised results for finished fixtures that lack them."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Fixture.fixture_id, Fixture.state)
                .outerjoin(FixtureResult, FixtureResult.fixture_id == Fixture.fixture_id)
                .where(
                    Fixture.state.in_([state.value for state in FINISHED_STATES]),
                    or_(
                        FixtureResult.fixture_id.is_(None),
                        FixtureResult.outcome_1x2.is_(None),
                        FixtureResult.outcome_ou25.is_(None),
                    ),
                )
            )
            pending = result.all()

        stored = unscored = errors = 0
        for fixture_id, state in pending:
            try:
                snapshot = await self.fixture_source.fixture_snapshot(fixture_id)
            except TransientError as e:
                errors += 1
                logger.warning("Result fetch failed", fixture_id=fixture_id, error=str(e))
                continue

            normalised = normalise_score(snapshot.score)
            if normalised is None:
                unscored += 1
                logger.info("Finished fixture has no usable score yet", fixture_id=fixture_id, state=state)
                continue

            row = {**normalised.as_row(), "finished_state": snapshot.state.value}
            async with self.session_maker() as session:
                async with session.begin():
                    insert = insert_for(session)
                    # Outcomes already written are never replaced
                    await session.execute(
                        insert(FixtureResult)
                        .values(fixture_id=fixture_id, **row)
                        .on_conflict_do_update(
                            index_elements=["fixture_id"],
                            set_={**row, "updated_at": utcnow()},
                            where=or_(
                                FixtureResult.outcome_1x2.is_(None),
                                FixtureResult.outcome_ou25.is_(None),
                            ),
                        )
                    )
            stored += 1
            logger.info(
                "Stored fixture result",
                fixture_id=fixture_id,
                score=f"{normalised.home_score}-{normalised.away_score}",
                outcome_1x2=normalised.outcome_1x2.value,
                outcome_ou25=normalised.outcome_ou25.value,
            )

        return {"status": "completed", "pending": len(pending), "stored": stored, "unscored": unscored, "errors": errors}
