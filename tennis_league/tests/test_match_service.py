"""
Tests for the match lifecycle service.

Tests:
- create: open, scheduled, played, auto home/away, authorization, validation
- claim: success, already claimed, lost race on a stale read, own match, other division
- record result: aggregates, idempotence, pending -> played, duplicate pairing guard
- schedule edits and deletes, including stale reads
- change feed events
"""

import logging

import pytest
from sqlalchemy import func, select
from unittest.mock import AsyncMock

from tennis_league.database.models import Match, MatchSet, MatchStatus
from tennis_league.models.schemas import (
    CreateMatchRequest,
    PendingMatch,
    PlayedMatch,
    RecordResultRequest,
    ScheduledMatch,
    UpdateScheduleRequest,
)
from tennis_league.services import match_service, match_store, standings_service
from tennis_league.services.home_away_service import assign_sides
from tennis_league.services.match_events import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, MatchEventFeed
from tennis_league.services.match_service import (
    DuplicatePairingError,
    MatchAlreadyClaimedError,
    MatchAuthorizationError,
    MatchNoLongerEditableError,
    MatchNotFoundError,
    MatchValidationError,
)

from tennis_league.tests.league_data import DIVISION_ID, MATCH_DATE, TOURNAMENT_ID

SCENARIO_SETS = [
    {"home_games": 6, "away_games": 4},
    {"home_games": 3, "away_games": 6},
    {"home_games": 7, "away_games": 5},
]


def create_request(**overrides):
    fields = dict(
        tournament_id=TOURNAMENT_ID,
        division_id=DIVISION_ID,
        date=MATCH_DATE.isoformat(),
        time="18:30",
        area_id="north",
    )
    fields.update(overrides)
    return CreateMatchRequest(**fields)


def result_request(sets=None, **overrides):
    fields = dict(sets=SCENARIO_SETS if sets is None else sets)
    fields.update(overrides)
    return RecordResultRequest(**fields)


def stale_snapshot(view, status=MatchStatus.PENDING, away_player_id=None):
    """Detached copy of a match as another actor read it before a concurrent change."""
    return Match(
        id=view.id,
        tournament_id=view.tournament_id,
        division_id=view.division_id,
        status=status,
        home_player_id=view.home_player_id,
        away_player_id=away_player_id,
        date=view.date,
        created_by=view.created_by,
    )


async def count_sets(session, match_id):
    result = await session.execute(select(func.count()).select_from(MatchSet).where(MatchSet.match_id == match_id))
    return result.scalar_one()


# ============================================================================
# Full scenario
# ============================================================================

@pytest.mark.asyncio
async def test_open_claim_result_standings_scenario(db_session, league):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]

    open_match = await match_service.create_match(db_session, create_request(), ana)
    assert isinstance(open_match, PendingMatch)
    assert open_match.home_player_id == ana.id
    assert open_match.time_block == "Evening"

    claimed = await match_service.claim_match(db_session, open_match.id, bruno)
    assert isinstance(claimed, ScheduledMatch)
    assert claimed.away_player_id == bruno.id

    with pytest.raises(MatchAlreadyClaimedError):
        await match_service.claim_match(db_session, open_match.id, carla)

    played = await match_service.record_result(
        db_session,
        open_match.id,
        result_request(home_had_drink=True, home_drinks=2, anecdote="Great third set"),
        ana,
    )
    assert isinstance(played, PlayedMatch)
    assert (played.result.home_sets_won, played.result.away_sets_won) == (2, 1)
    assert (played.result.home_games_won, played.result.away_games_won) == (16, 15)
    assert played.winner_id == ana.id
    assert [s.set_number for s in played.result.sets] == [1, 2, 3]

    standings = await standings_service.get_standings(db_session, TOURNAMENT_ID, DIVISION_ID)
    assert standings[0].player_id == ana.id
    assert standings[0].points == 3
    assert standings[0].drinks == 2
    assert [row.player_id for row in standings] == [ana.id, bruno.id, carla.id]

    with pytest.raises(DuplicatePairingError):
        await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)


# ============================================================================
# Create
# ============================================================================

@pytest.mark.asyncio
async def test_create_scheduled_and_played(db_session, league):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]

    scheduled = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    assert isinstance(scheduled, ScheduledMatch)

    played = await match_service.create_match(
        db_session,
        create_request(away_player_id=carla.id, result={"sets": [{"home_games": 6, "away_games": 1}]}),
        ana,
    )
    assert isinstance(played, PlayedMatch)
    assert played.result.home_sets_won == 1


@pytest.mark.asyncio
async def test_create_with_auto_assigned_home(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    view = await match_service.create_match(
        db_session,
        create_request(home_player_id=bruno.id, away_player_id=ana.id, auto_assign_home=True),
        ana,
    )
    expected = assign_sides(DIVISION_ID, TOURNAMENT_ID, ana.id, bruno.id)
    assert (view.home_player_id, view.away_player_id) == expected


@pytest.mark.asyncio
async def test_create_authorization(db_session, league):
    ana, bruno, carla, admin = league["ana"], league["bruno"], league["carla"], league["admin"]

    with pytest.raises(MatchAuthorizationError):
        await match_service.create_match(db_session, create_request(home_player_id=bruno.id), carla)
    with pytest.raises(MatchAuthorizationError):
        await match_service.create_match(
            db_session, create_request(home_player_id=ana.id, away_player_id=bruno.id), carla
        )

    view = await match_service.create_match(db_session, create_request(home_player_id=bruno.id), admin)
    assert view.home_player_id == bruno.id
    assert view.created_by == admin.id


@pytest.mark.asyncio
async def test_create_validation(db_session, league):
    ana = league["ana"]

    with pytest.raises(MatchValidationError):
        await match_service.create_match(db_session, create_request(away_player_id="p-dario"), ana)
    with pytest.raises(MatchValidationError):
        await match_service.create_match(db_session, create_request(area_id="atlantis"), ana)
    with pytest.raises(MatchValidationError):
        await match_service.create_match(
            db_session,
            create_request(away_player_id="p-bruno", result={"sets": [{"home_games": "", "away_games": 3}]}),
            ana,
        )


# ============================================================================
# Claim
# ============================================================================

@pytest.mark.asyncio
async def test_claim_rejections(db_session, league):
    ana, dario = league["ana"], league["dario"]
    open_match = await match_service.create_match(db_session, create_request(), ana)

    with pytest.raises(MatchValidationError):
        await match_service.claim_match(db_session, open_match.id, ana)
    with pytest.raises(MatchAuthorizationError):
        await match_service.claim_match(db_session, open_match.id, dario)
    with pytest.raises(MatchNotFoundError):
        await match_service.claim_match(db_session, "missing", ana)


@pytest.mark.asyncio
async def test_claim_blocked_by_existing_pairing(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    open_match = await match_service.create_match(db_session, create_request(), ana)

    with pytest.raises(DuplicatePairingError):
        await match_service.claim_match(db_session, open_match.id, bruno)


@pytest.mark.asyncio
async def test_claim_lost_race_on_stale_read(db_session, league, monkeypatch):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]
    bruno_id = bruno.id
    open_match = await match_service.create_match(db_session, create_request(), ana)
    await match_service.claim_match(db_session, open_match.id, bruno)

    # Carla read the match while it was still open
    async def fake_get_match(session, match_id):
        return stale_snapshot(open_match)

    monkeypatch.setattr(match_store, "get_match", fake_get_match)
    with pytest.raises(MatchAlreadyClaimedError):
        await match_service.claim_match(db_session, open_match.id, carla)
    monkeypatch.undo()

    view = await match_store.get_match_view(db_session, open_match.id)
    assert view.away_player_id == bruno_id


# ============================================================================
# Record result
# ============================================================================

@pytest.mark.asyncio
async def test_record_result_is_idempotent(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)

    first = await match_service.record_result(db_session, match.id, result_request(), bruno)
    second = await match_service.record_result(db_session, match.id, result_request(), bruno)

    assert first.result == second.result
    assert await count_sets(db_session, match.id) == 3


@pytest.mark.asyncio
async def test_record_result_replaces_sets(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    await match_service.record_result(db_session, match.id, result_request(), ana)

    corrected = await match_service.record_result(
        db_session,
        match.id,
        result_request(sets=[{"home_games": 2, "away_games": 6}, {"home_games": 4, "away_games": 6}]),
        ana,
    )
    assert corrected.winner_id == bruno.id
    assert await count_sets(db_session, match.id) == 2


@pytest.mark.asyncio
async def test_blank_sets_are_ignored_but_one_is_required(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)

    with pytest.raises(MatchValidationError):
        await match_service.record_result(
            db_session, match.id, result_request(sets=[{"home_games": None, "away_games": None}]), ana
        )

    view = await match_service.record_result(
        db_session,
        match.id,
        result_request(sets=[{"home_games": 6, "away_games": 3}, {"home_games": "", "away_games": ""}]),
        ana,
    )
    assert len(view.result.sets) == 1


@pytest.mark.asyncio
async def test_record_result_on_open_match(db_session, league):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]
    open_match = await match_service.create_match(db_session, create_request(), ana)

    with pytest.raises(MatchValidationError):
        await match_service.record_result(db_session, open_match.id, result_request(), ana)

    view = await match_service.record_result(
        db_session, open_match.id, result_request(away_player_id=carla.id), carla
    )
    assert isinstance(view, PlayedMatch)
    assert view.away_player_id == carla.id

    # Another open match cannot become a second result between ana and carla
    second_open = await match_service.create_match(db_session, create_request(), ana)
    with pytest.raises(DuplicatePairingError):
        await match_service.record_result(
            db_session, second_open.id, result_request(away_player_id=carla.id), ana
        )
    # ...and an outsider cannot record a result for ana
    with pytest.raises(MatchAuthorizationError):
        await match_service.record_result(
            db_session, second_open.id, result_request(away_player_id=carla.id), bruno
        )


@pytest.mark.asyncio
async def test_record_result_cannot_change_opponent(db_session, league):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)

    with pytest.raises(MatchValidationError):
        await match_service.record_result(db_session, match.id, result_request(away_player_id=carla.id), ana)
    with pytest.raises(MatchAuthorizationError):
        await match_service.record_result(db_session, match.id, result_request(), carla)


# ============================================================================
# Schedule edits
# ============================================================================

@pytest.mark.asyncio
async def test_update_schedule(db_session, league, caplog):
    ana, bruno, carla = league["ana"], league["bruno"], league["carla"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)

    with caplog.at_level(logging.INFO, logger="tennis_league.services.match_service"):
        view = await match_service.update_schedule(
            db_session, match.id, UpdateScheduleRequest(date="2025-11-02", time="10:00", venue_detail="Court 1"), bruno
        )
    assert f"Schedule of match {match.id} updated by {bruno.id}" in caplog.text
    assert view.time_block == "Morning"
    assert view.venue_detail == "Court 1"
    assert isinstance(view, ScheduledMatch)

    with pytest.raises(MatchAuthorizationError):
        await match_service.update_schedule(db_session, match.id, UpdateScheduleRequest(date="2025-11-03"), carla)


@pytest.mark.asyncio
async def test_update_schedule_after_result_is_rejected(db_session, league, monkeypatch):
    ana, bruno = league["ana"], league["bruno"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    await match_service.record_result(db_session, match.id, result_request(), bruno)

    with pytest.raises(MatchNoLongerEditableError):
        await match_service.update_schedule(db_session, match.id, UpdateScheduleRequest(date="2025-11-02"), ana)

    # Ana opened the edit form before Bruno recorded the result
    async def fake_get_match(session, match_id):
        return stale_snapshot(match, status=MatchStatus.SCHEDULED, away_player_id=bruno.id)

    monkeypatch.setattr(match_store, "get_match", fake_get_match)
    with pytest.raises(MatchNoLongerEditableError):
        await match_service.update_schedule(db_session, match.id, UpdateScheduleRequest(date="2025-11-02"), ana)
    monkeypatch.undo()

    view = await match_store.get_match_view(db_session, match.id)
    assert view.date == MATCH_DATE


# ============================================================================
# Delete
# ============================================================================

@pytest.mark.asyncio
async def test_delete_played_match_removes_sets(db_session, league):
    ana, bruno, admin = league["ana"], league["bruno"], league["admin"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    await match_service.record_result(db_session, match.id, result_request(), bruno)

    await match_service.delete_match(db_session, match.id, admin)

    assert await match_store.get_match_view(db_session, match.id) is None
    assert await count_sets(db_session, match.id) == 0
    with pytest.raises(MatchNotFoundError):
        await match_service.delete_match(db_session, match.id, admin)


@pytest.mark.asyncio
async def test_cancel_on_stale_read_keeps_result(db_session, league, monkeypatch):
    ana, bruno = league["ana"], league["bruno"]
    match = await match_service.create_match(db_session, create_request(away_player_id=bruno.id), ana)
    await match_service.record_result(db_session, match.id, result_request(), bruno)

    # Ana tries to cancel the match as she last saw it: scheduled
    async def fake_get_match(session, match_id):
        return stale_snapshot(match, status=MatchStatus.SCHEDULED, away_player_id=bruno.id)

    monkeypatch.setattr(match_store, "get_match", fake_get_match)
    with pytest.raises(MatchNoLongerEditableError):
        await match_service.delete_match(db_session, match.id, ana)
    monkeypatch.undo()

    view = await match_store.get_match_view(db_session, match.id)
    assert isinstance(view, PlayedMatch)
    assert await count_sets(db_session, match.id) == 3


@pytest.mark.asyncio
async def test_delete_requires_participant_creator_or_admin(db_session, league):
    ana, carla = league["ana"], league["carla"]
    open_match = await match_service.create_match(db_session, create_request(), ana)

    with pytest.raises(MatchAuthorizationError):
        await match_service.delete_match(db_session, open_match.id, carla)
    await match_service.delete_match(db_session, open_match.id, ana)


# ============================================================================
# Change feed
# ============================================================================

@pytest.mark.asyncio
async def test_operations_publish_events(db_session, league):
    ana, bruno = league["ana"], league["bruno"]
    feed = MatchEventFeed()
    subscriber = AsyncMock()
    await feed.subscribe(subscriber)

    open_match = await match_service.create_match(db_session, create_request(), ana, feed=feed)
    await match_service.claim_match(db_session, open_match.id, bruno, feed=feed)
    await match_service.delete_match(db_session, open_match.id, bruno, feed=feed)

    events = [call.args[0] for call in subscriber.await_args_list]
    assert [(e.kind, e.status) for e in events] == [
        (EVENT_INSERT, MatchStatus.PENDING),
        (EVENT_UPDATE, MatchStatus.SCHEDULED),
        (EVENT_DELETE, None),
    ]
    assert all(e.match_id == open_match.id for e in events)


@pytest.mark.asyncio
async def test_rejected_operations_publish_nothing(db_session, league):
    ana, carla = league["ana"], league["carla"]
    feed = MatchEventFeed()
    subscriber = AsyncMock()
    open_match = await match_service.create_match(db_session, create_request(), ana, feed=feed)
    await feed.subscribe(subscriber)

    with pytest.raises(MatchAuthorizationError):
        await match_service.delete_match(db_session, open_match.id, carla, feed=feed)
    subscriber.assert_not_awaited()


def test_summarize_sets():
    summary = match_service.summarize_sets(
        [
            match_service.SetScore(home_games=6, away_games=4),
            match_service.SetScore(home_games=3, away_games=6),
            match_service.SetScore(home_games=7, away_games=5),
            match_service.SetScore(home_games=6, away_games=6),
        ]
    )
    assert (summary.home_sets_won, summary.away_sets_won) == (2, 1)
    assert (summary.home_games_won, summary.away_games_won) == (22, 21)
    assert len(summary.sets) == 4
