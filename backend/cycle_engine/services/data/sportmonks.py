"""SportMonks v3 football API client.

This is the only module that talks to the sports data vendor. Every request
carries a timeout, waits on the shared token bucket and is retried with
backoff on transient failures.
"""

from collections import defaultdict
from datetime import date
from decimal import ROUND_FLOOR, Decimal, InvalidOperation

import httpx
import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from cycle_engine.config import settings
from cycle_engine.errors import RateLimitedError, TransientError
from cycle_engine.schemas.outcomes import FixtureState, state_from_vendor
from cycle_engine.schemas.sportmonks import (
    FinalScore,
    FixtureInfo,
    FixtureSnapshot,
    OddsSet,
    SMFixture,
    SMFixtureEnvelope,
    SMFixtureList,
    SMOdd,
)
from cycle_engine.services.data.rate_limiter import TokenBucket
from cycle_engine.timeutil import from_epoch, parse_vendor_utc, to_epoch

logger = structlog.get_logger()

MARKET_FULLTIME_RESULT = 1
MARKET_GOALS_OVER_UNDER = 80
OU_LINE = Decimal("2.5")

MAX_1X2_ODD = Decimal("100")
MAX_OU_ODD = Decimal("10")

HOME_LABELS = {"home", "1"}
DRAW_LABELS = {"draw", "x"}
AWAY_LABELS = {"away", "2"}

# state_id -> developer_name, for payloads without the state include
STATE_IDS = {
    1: "NS", 2: "INPLAY_1ST_HALF", 3: "HT", 4: "BREAK", 5: "FT", 6: "INPLAY_ET",
    7: "AET", 8: "FT_PEN", 9: "INPLAY_PENALTIES", 10: "POSTP", 11: "SUSP",
    12: "CANCL", 13: "TBA", 15: "ABANDONED", 16: "DELAYED", 18: "INTERRUPTED",
    21: "EXTRA_TIME_BREAK", 22: "INPLAY_2ND_HALF", 25: "PEN_BREAK",
}

shared_bucket = TokenBucket(settings.sportmonks_rate_per_second, settings.sportmonks_burst)


def scale_odd(value: str | float) -> int | None:
    """Decimal odd to integer x1000, floored. Float noise is avoided via str."""
    try:
        decimal_odd = Decimal(str(value))
    except InvalidOperation:
        return None
    return int((decimal_odd * 1000).to_integral_value(rounding=ROUND_FLOOR))


def fixture_state(fixture: SMFixture) -> FixtureState | None:
    code = fixture.state.code if fixture.state else None
    if not code and fixture.state_id is not None:
        code = STATE_IDS.get(fixture.state_id)
    return state_from_vendor(code)


def _goals_by_description(fixture: SMFixture) -> dict[tuple[str, str], int]:
    goals = {}
    for score in fixture.scores:
        side = (score.score.participant or "").lower()
        if side in ("home", "away") and score.score.goals is not None:
            goals[(score.description.upper(), side)] = score.score.goals
    return goals


def extract_final_score(fixture: SMFixture, state: FixtureState) -> FinalScore | None:
    """90-minute score of a finished fixture, or None when any part is missing.

    After extra time or penalties the score is the sum of the two regular
    halves; ``CURRENT`` would include extra-time goals.
    """
    if not state.is_finished:
        return None
    goals = _goals_by_description(fixture)
    ht_home = goals.get(("1ST_HALF", "home"))
    ht_away = goals.get(("1ST_HALF", "away"))

    if state in (FixtureState.FINISHED_AFTER_EXTRA, FixtureState.FINISHED_AFTER_PENALTIES):
        second_home = goals.get(("2ND_HALF", "home"))
        second_away = goals.get(("2ND_HALF", "away"))
        if None in (ht_home, ht_away, second_home, second_away):
            logger.error(
                "Cannot derive 90-minute score after extra time",
                fixture_id=fixture.id,
                available=sorted(f"{d}:{s}" for d, s in goals),
            )
            return None
        return FinalScore(ht_home + second_home, ht_away + second_away, ht_home, ht_away)

    home = goals.get(("CURRENT", "home"))
    away = goals.get(("CURRENT", "away"))
    if home is None or away is None:
        return None
    return FinalScore(home, away, ht_home, ht_away)


def extract_odds(odds: list[SMOdd], bookmaker_preference: list[int]) -> OddsSet | None:
    """First bookmaker in preference order offering all five markets."""
    by_bookmaker: dict[int, dict[str, int]] = defaultdict(dict)
    for odd in odds:
        scaled = scale_odd(odd.value)
        if scaled is None:
            continue
        label = odd.label.strip().lower()
        if odd.market_id == MARKET_FULLTIME_RESULT:
            if not 1000 < scaled < MAX_1X2_ODD * 1000:
                continue
            if label in HOME_LABELS:
                by_bookmaker[odd.bookmaker_id]["home"] = scaled
            elif label in DRAW_LABELS:
                by_bookmaker[odd.bookmaker_id]["draw"] = scaled
            elif label in AWAY_LABELS:
                by_bookmaker[odd.bookmaker_id]["away"] = scaled
        elif odd.market_id == MARKET_GOALS_OVER_UNDER:
            line = odd.total if odd.total is not None else odd.name
            try:
                if line is None or Decimal(str(line)) != OU_LINE:
                    continue
            except InvalidOperation:
                continue
            if not 1000 < scaled < MAX_OU_ODD * 1000:
                continue
            if label == "over":
                by_bookmaker[odd.bookmaker_id]["over"] = scaled
            elif label == "under":
                by_bookmaker[odd.bookmaker_id]["under"] = scaled

    for bookmaker_id in bookmaker_preference:
        markets = by_bookmaker.get(bookmaker_id, {})
        if all(k in markets for k in ("home", "draw", "away", "over", "under")):
            return OddsSet(
                bookmaker_id=bookmaker_id,
                home=markets["home"],
                draw=markets["draw"],
                away=markets["away"],
                over=markets["over"],
                under=markets["under"],
            )
    return None


def to_fixture_info(fixture: SMFixture) -> FixtureInfo | None:
    """Convert a vendor fixture; None if teams, kickoff or state are missing."""
    home = away = None
    for participant in fixture.participants:
        location = (participant.meta.location or "").lower()
        if location == "home":
            home = participant.name
        elif location == "away":
            away = participant.name
    state = fixture_state(fixture)
    if fixture.starting_at_timestamp is not None:
        starting_at = from_epoch(fixture.starting_at_timestamp)
    elif fixture.starting_at:
        starting_at = parse_vendor_utc(fixture.starting_at)
    else:
        starting_at = None
    if not home or not away or starting_at is None or state is None:
        return None
    return FixtureInfo(
        fixture_id=fixture.id,
        home_team=home,
        away_team=away,
        league_id=fixture.league.id if fixture.league else None,
        league_name=fixture.league.name if fixture.league else "",
        starting_at=starting_at,
        start_ts=to_epoch(starting_at),
        state=state,
    )


class SportMonksClient:
    """Client for the SportMonks football API."""

    def __init__(
        self,
        api_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        bucket: TokenBucket | None = None,
        client: httpx.AsyncClient | None = None,
        bookmaker_preference: list[int] | None = None,
    ):
        self.api_token = api_token or settings.sportmonks_api_token
        self.base_url = (base_url or settings.sportmonks_base_url).rstrip("/")
        self.timeout = min(timeout or settings.sportmonks_timeout_seconds, 15.0)
        self.bucket = bucket or shared_bucket
        self.bookmaker_preference = bookmaker_preference or settings.bookmaker_preference
        self._client = client

    @retry(
        stop=stop_after_attempt(settings.sportmonks_max_attempts),
        wait=wait_exponential(multiplier=0.5, max=10) + wait_random(0, 0.5),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    async def _get(self, path: str, params: dict | None = None) -> dict:
        """GET with rate limiting; 429 and 5xx become retryable errors."""
        await self.bucket.acquire()
        query = {"api_token": self.api_token, **(params or {})}
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=query, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=query, timeout=self.timeout)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientError(f"GET {path}: {e.__class__.__name__}") from e

        if response.status_code == 429:
            retry_after = float(response.headers.get("retry-after", 5) or 5)
            self.bucket.pause(retry_after)
            logger.warning("SportMonks rate limited", path=path, retry_after=retry_after)
            raise RateLimitedError(f"GET {path}: rate limited", retry_after=retry_after)
        if response.status_code >= 500:
            raise TransientError(f"GET {path}: HTTP {response.status_code}")
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"GET {path}: invalid JSON") from e

    async def _get_fixture(self, fixture_id: int, include: str, **params) -> SMFixture:
        body = await self._get(f"/fixtures/{fixture_id}", {"include": include, **params})
        try:
            return SMFixtureEnvelope.model_validate(body).data
        except ValidationError as e:
            raise TransientError(f"Malformed fixture {fixture_id}: {e.error_count()} errors") from e

    async def fixtures_for_date(self, game_date: date) -> list[FixtureInfo]:
        """All fixtures scheduled on a UTC calendar day."""
        fixtures: list[FixtureInfo] = []
        page = 1
        while True:
            body = await self._get(
                f"/fixtures/date/{game_date.isoformat()}",
                {"include": "league;participants;state", "per_page": 100, "page": page},
            )
            try:
                listing = SMFixtureList.model_validate(body)
            except ValidationError as e:
                raise TransientError(f"Malformed fixture list for {game_date}") from e

            for raw in listing.data:
                info = to_fixture_info(raw)
                if info is None:
                    logger.warning("Skipping incomplete fixture", fixture_id=raw.id)
                    continue
                fixtures.append(info)

            if not listing.pagination or not listing.pagination.has_more:
                break
            page += 1

        logger.info("Fetched fixtures for date", game_date=game_date.isoformat(), count=len(fixtures))
        return fixtures

    async def odds_for_fixture(self, fixture_id: int) -> OddsSet | None:
        """Pre-match 1X2 and O/U 2.5 odds from the preferred bookmaker."""
        fixture = await self._get_fixture(
            fixture_id,
            "odds",
            filters=(
                f"markets:{MARKET_FULLTIME_RESULT},{MARKET_GOALS_OVER_UNDER};"
                f"bookmakers:{','.join(str(b) for b in self.bookmaker_preference)}"
            ),
        )
        return extract_odds(fixture.odds, self.bookmaker_preference)

    async def fixture_snapshot(self, fixture_id: int) -> FixtureSnapshot:
        """State and final score from a single request."""
        fixture = await self._get_fixture(fixture_id, "scores;participants;state")
        state = fixture_state(fixture)
        if state is None:
            raise TransientError(f"Fixture {fixture_id} has no recognisable state")
        return FixtureSnapshot(
            fixture_id=fixture_id,
            state=state,
            score=extract_final_score(fixture, state),
        )

    async def state_of(self, fixture_id: int) -> FixtureState:
        return (await self.fixture_snapshot(fixture_id)).state

    async def final_scores(self, fixture_id: int) -> FinalScore | None:
        return (await self.fixture_snapshot(fixture_id)).score
