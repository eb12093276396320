"""Daily match selection.

Chooses the ten fixtures of a game date. The persisted ``display_order`` is
the slot order used by the contract and every downstream component.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker, insert_for
from cycle_engine.errors import InvariantViolation
from cycle_engine.models import Cycle, DailyGameMatch, Fixture, FixtureOdds
from cycle_engine.schemas.outcomes import FixtureState
from cycle_engine.schemas.sportmonks import FixtureInfo, OddsSet
from cycle_engine.schemas.ten_slots import SLOT_COUNT
from cycle_engine.timeutil import utcnow

logger = structlog.get_logger()

EXCLUDE_KEYWORDS = (
    "u17", "u18", "u19", "u21", "u23", "youth", "junior", "reserve", "b team",
    "women", "female", "ladies", "womens", "women's",
)

LEAGUE_PRIORITIES = {
    "Champions League": 110,
    "Europa League": 105,
    "Europa Conference League": 100,
    "Premier League": 100,
    "La Liga": 100,
    "Bundesliga": 100,
    "Serie A": 100,
    "Ligue 1": 95,
    "Eredivisie": 85,
    "Pro League": 80,
    "Primeira Liga": 80,
    "Super Lig": 75,
    "Championship": 70,
    "Serie B": 65,
    "La Liga 2": 65,
    "Ligue 2": 65,
    "2. Bundesliga": 65,
    "Eerste Divisie": 60,
    "Ekstraklasa": 50,
    "Superliga": 50,
    "Super League": 50,
    "First Division": 45,
    "Allsvenskan": 45,
    "Eliteserien": 45,
    "League One": 40,
    "Major League Soccer": 30,
    "Copa Libertadores": 30,
    "Liga MX": 25,
    "Copa Sudamericana": 20,
}
DEFAULT_LEAGUE_PRIORITY = 30

ENGLISH_TOP_FLIGHT_CLUBS = (
    "Arsenal", "Chelsea", "Liverpool", "Manchester City", "Manchester United",
    "Tottenham", "Newcastle", "Brighton", "Aston Villa", "West Ham", "Burnley",
    "Nottingham Forest", "Fulham", "Leeds", "Wolverhampton", "Bournemouth",
    "Crystal Palace", "Sunderland", "Everton", "Brentford",
)

# Serie A shares its name with Brazil's top flight
BRAZILIAN_CLUBS = (
    "Flamengo", "Palmeiras", "Santos", "Corinthians", "Sao Paulo", "Gremio",
    "Internacional", "Atletico Mineiro", "Cruzeiro", "Botafogo", "Vasco da Gama",
    "Fluminense", "Fortaleza", "Bahia", "Bragantino", "Juventude",
)

MAX_1X2_SCALED = 50_000
MAX_OU_SCALED = 10_000
REASONABLE_MIN = 1_050
REASONABLE_MAX = 15_000


@dataclass
class Candidate:
    fixture: FixtureInfo
    odds: OddsSet
    league_priority: int
    priority_score: int


def is_excluded(fixture: FixtureInfo) -> bool:
    """Youth, reserve and women's competitions are never selected."""
    haystack = " ".join((fixture.league_name, fixture.home_team, fixture.away_team)).lower()
    return any(keyword in haystack for keyword in EXCLUDE_KEYWORDS)


def league_priority(league_name: str, home_team: str = "", away_team: str = "") -> int:
    teams = (home_team or "", away_team or "")
    if league_name == "Premier League":
        english = any(club in team for team in teams for club in ENGLISH_TOP_FLIGHT_CLUBS)
        return 100 if english else DEFAULT_LEAGUE_PRIORITY
    if league_name == "Serie A":
        brazilian = any(club in team for team in teams for club in BRAZILIAN_CLUBS)
        return 25 if brazilian else 100
    return LEAGUE_PRIORITIES.get(league_name, DEFAULT_LEAGUE_PRIORITY)


def odds_are_selectable(odds: OddsSet) -> bool:
    if any(value <= 1000 for value in odds.as_tuple()):
        return False
    if max(odds.home, odds.draw, odds.away) > MAX_1X2_SCALED:
        return False
    return max(odds.over, odds.under) <= MAX_OU_SCALED


def priority_score(fixture: FixtureInfo, odds: OddsSet, earliest_hour: int) -> tuple[int, int]:
    """Return (league priority, total priority score)."""
    league = league_priority(fixture.league_name, fixture.home_team, fixture.away_team)
    score = league

    moneyline = (odds.home, odds.draw, odds.away)
    score += (min(moneyline) * 20) // max(moneyline)

    if all(REASONABLE_MIN <= value <= REASONABLE_MAX for value in odds.as_tuple()):
        score += 15

    hour = fixture.starting_at.hour
    if 15 <= hour <= 21:
        score += 10

    # Earlier kickoffs leave more time to resolve the cycle
    score += max(0, 5 - (hour - earliest_hour) // 2)
    return league, score


def pick_ten(
    candidates: list[Candidate],
    high_priority_threshold: int,
    max_per_league: int,
) -> list[Candidate]:
    """Two passes: high-priority leagues capped per league, then best of the rest."""
    ranked = sorted(
        candidates,
        key=lambda c: (-c.priority_score, c.fixture.start_ts, c.fixture.fixture_id),
    )
    selected: list[Candidate] = []
    per_league: dict[str, int] = {}

    for candidate in ranked:
        if len(selected) >= SLOT_COUNT:
            break
        league = candidate.fixture.league_name
        if candidate.league_priority >= high_priority_threshold and per_league.get(league, 0) < max_per_league:
            selected.append(candidate)
            per_league[league] = per_league.get(league, 0) + 1

    chosen = {c.fixture.fixture_id for c in selected}
    for candidate in ranked:
        if len(selected) >= SLOT_COUNT:
            break
        if candidate.fixture.fixture_id not in chosen:
            selected.append(candidate)
            chosen.add(candidate.fixture.fixture_id)

    return selected


class MatchSelector:
    """Selects and persists the ten fixtures of a game date."""

    def __init__(
        self,
        fixture_source,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
    ):
        self.fixture_source = fixture_source
        self.session_maker = session_maker

    async def existing_selection(self, game_date: date) -> list[DailyGameMatch]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(DailyGameMatch)
                .where(DailyGameMatch.game_date == game_date)
                .order_by(DailyGameMatch.display_order)
            )
            return list(result.scalars().all())

    def is_eligible(self, fixture: FixtureInfo, now: datetime) -> bool:
        if is_excluded(fixture):
            return False
        if fixture.state != FixtureState.NOT_STARTED:
            return False
        if fixture.starting_at <= now + timedelta(minutes=settings.betting_grace_minutes):
            return False
        return fixture.starting_at.hour >= settings.earliest_kickoff_hour_utc

    async def select_for_date(
        self,
        game_date: date,
        reserved_cycle_id: int,
        now: datetime | None = None,
    ) -> list[DailyGameMatch]:
        """Ten slot-ordered matches for ``game_date``; reuses an existing selection."""
        existing = await self.existing_selection(game_date)
        if existing:
            logger.info(
                "Matches already selected for date",
                game_date=game_date.isoformat(),
                count=len(existing),
            )
            if len(existing) != SLOT_COUNT:
                raise InvariantViolation(
                    "selection_size",
                    f"Stored selection for {game_date} has {len(existing)} matches",
                    game_date=game_date.isoformat(),
                )
            return existing

        now = now or utcnow()
        fixtures = await self.fixture_source.fixtures_for_date(game_date)
        eligible = [f for f in fixtures if self.is_eligible(f, now)]
        logger.info(
            "Filtered fixtures for selection",
            game_date=game_date.isoformat(),
            fetched=len(fixtures),
            eligible=len(eligible),
        )

        candidates = []
        for fixture in eligible:
            odds = await self.fixture_source.odds_for_fixture(fixture.fixture_id)
            if odds is None or not odds_are_selectable(odds):
                continue
            league, score = priority_score(fixture, odds, settings.earliest_kickoff_hour_utc)
            candidates.append(Candidate(fixture, odds, league, score))

        if len(candidates) < SLOT_COUNT:
            raise InvariantViolation(
                "insufficient_fixtures",
                f"Only {len(candidates)} selectable fixtures for {game_date}",
                game_date=game_date.isoformat(),
                found=len(candidates),
            )

        picked = pick_ten(
            candidates,
            settings.high_priority_threshold,
            settings.max_matches_per_league,
        )
        try:
            await self._persist(game_date, reserved_cycle_id, picked)
        except IntegrityError:
            logger.warning("Selection raced with a peer; using stored selection", game_date=game_date.isoformat())
            return await self.existing_selection(game_date)

        logger.info(
            "Selected daily matches",
            game_date=game_date.isoformat(),
            cycle_id=reserved_cycle_id,
            fixtures=[c.fixture.fixture_id for c in picked],
            high_priority=sum(1 for c in picked if c.league_priority >= settings.high_priority_threshold),
        )
        return await self.existing_selection(game_date)

    async def _persist(self, game_date: date, cycle_id: int, picked: list[Candidate]) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                insert = insert_for(session)

                # Reservations from a date whose cycle never opened
                opened = select(Cycle.cycle_id).where(Cycle.cycle_id == cycle_id)
                await session.execute(
                    delete(DailyGameMatch).where(
                        DailyGameMatch.cycle_id == cycle_id,
                        DailyGameMatch.game_date != game_date,
                        ~DailyGameMatch.cycle_id.in_(opened),
                    )
                )

                for order, candidate in enumerate(picked):
                    fixture, odds = candidate.fixture, candidate.odds
                    await session.execute(
                        insert(Fixture).values(
                            fixture_id=fixture.fixture_id,
                            home_team=fixture.home_team,
                            away_team=fixture.away_team,
                            league_id=fixture.league_id,
                            league_name=fixture.league_name,
                            starting_at=fixture.starting_at,
                            start_ts=fixture.start_ts,
                            state=fixture.state.value,
                            state_checked_at=utcnow(),
                        ).on_conflict_do_update(
                            index_elements=["fixture_id"],
                            set_={
                                "starting_at": fixture.starting_at,
                                "start_ts": fixture.start_ts,
                                "league_name": fixture.league_name,
                                "updated_at": utcnow(),
                            },
                        )
                    )
                    await session.execute(
                        insert(FixtureOdds).values(
                            fixture_id=fixture.fixture_id,
                            bookmaker_id=odds.bookmaker_id,
                            odds_home=odds.home,
                            odds_draw=odds.draw,
                            odds_away=odds.away,
                            odds_over=odds.over,
                            odds_under=odds.under,
                        ).on_conflict_do_update(
                            index_elements=["fixture_id"],
                            set_={
                                "bookmaker_id": odds.bookmaker_id,
                                "odds_home": odds.home,
                                "odds_draw": odds.draw,
                                "odds_away": odds.away,
                                "odds_over": odds.over,
                                "odds_under": odds.under,
                                "fetched_at": utcnow(),
                            },
                        )
                    )
                    session.add(DailyGameMatch(
                        fixture_id=fixture.fixture_id,
                        cycle_id=cycle_id,
                        game_date=game_date,
                        display_order=order,
                        home_team=fixture.home_team,
                        away_team=fixture.away_team,
                        league_name=fixture.league_name,
                        match_date=fixture.starting_at,
                        start_ts=fixture.start_ts,
                        odds_home=odds.home,
                        odds_draw=odds.draw,
                        odds_away=odds.away,
                        odds_over=odds.over,
                        odds_under=odds.under,
                        priority_score=candidate.priority_score,
                    ))
