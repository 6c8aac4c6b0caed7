"""
Tests for the match store's conditional writes.
"""

import pytest
from sqlalchemy import func, select

from tennis_league.database.models import MatchSet, MatchStatus
from tennis_league.models.schemas import PendingMatch, PlayedMatch, ScheduledMatch
from tennis_league.services import match_store

from tennis_league.tests.league_data import DIVISION_ID, MATCH_DATE, TOURNAMENT_ID


async def new_pending(session, home="p-ana"):
    match = await match_store.insert_match(
        session,
        tournament_id=TOURNAMENT_ID,
        division_id=DIVISION_ID,
        status=MatchStatus.PENDING,
        home_player_id=home,
        date=MATCH_DATE,
        created_by=home,
    )
    await session.commit()
    return match.id


async def count_sets(session, match_id):
    result = await session.execute(select(func.count()).select_from(MatchSet).where(MatchSet.match_id == match_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_claim_applies_once(db_session, league):
    match_id = await new_pending(db_session)

    first = await match_store.claim_pending(db_session, match_id, "p-bruno")
    second = await match_store.claim_pending(db_session, match_id, "p-carla")
    await db_session.commit()

    assert first.applied and first.rows_affected == 1
    assert second.lost_race and second.rows_affected == 0

    view = await match_store.get_match_view(db_session, match_id)
    assert isinstance(view, ScheduledMatch)
    assert view.away_player_id == "p-bruno"


@pytest.mark.asyncio
async def test_schedule_update_only_while_open(db_session, league):
    match_id = await new_pending(db_session)
    outcome = await match_store.update_schedule(db_session, match_id, {"venue_detail": "Court 2"})
    assert outcome.applied

    await match_store.claim_pending(db_session, match_id, "p-bruno")
    await match_store.write_result(
        db_session, match_id, MatchStatus.SCHEDULED, {"home_sets_won": 2}, expected_away_player_id="p-bruno"
    )
    outcome = await match_store.update_schedule(db_session, match_id, {"venue_detail": "Court 3"})
    assert outcome.lost_race
    await db_session.commit()

    view = await match_store.get_match_view(db_session, match_id)
    assert view.venue_detail == "Court 2"


@pytest.mark.asyncio
async def test_write_result_checks_expected_state(db_session, league):
    match_id = await new_pending(db_session)

    # Pending match: requires the away slot to still be empty
    await match_store.claim_pending(db_session, match_id, "p-bruno")
    stale = await match_store.write_result(
        db_session, match_id, MatchStatus.PENDING, {"away_player_id": "p-carla"}
    )
    assert stale.lost_race

    wrong_opponent = await match_store.write_result(
        db_session, match_id, MatchStatus.SCHEDULED, {}, expected_away_player_id="p-carla"
    )
    assert wrong_opponent.lost_race

    ok = await match_store.write_result(
        db_session, match_id, MatchStatus.SCHEDULED, {"home_sets_won": 1}, expected_away_player_id="p-bruno"
    )
    assert ok.applied
    await match_store.replace_sets(db_session, match_id, [(6, 4)])
    await db_session.commit()

    view = await match_store.get_match_view(db_session, match_id)
    assert isinstance(view, PlayedMatch)
    assert [(s.home_games, s.away_games) for s in view.result.sets] == [(6, 4)]


@pytest.mark.asyncio
async def test_replace_sets_replaces_whole_list(db_session, league):
    match_id = await new_pending(db_session)
    await match_store.insert_sets(db_session, match_id, [(6, 4), (3, 6), (7, 5)])
    await match_store.replace_sets(db_session, match_id, [(6, 0)])
    await db_session.commit()
    assert await count_sets(db_session, match_id) == 1


@pytest.mark.asyncio
async def test_delete_is_conditional_on_status(db_session, league):
    match_id = await new_pending(db_session)
    await match_store.insert_sets(db_session, match_id, [(6, 4)])
    await db_session.commit()

    outcome = await match_store.delete_match(db_session, match_id, (MatchStatus.PLAYED,))
    assert outcome.lost_race
    await db_session.rollback()
    assert await count_sets(db_session, match_id) == 1

    outcome = await match_store.delete_match(db_session, match_id, match_store.OPEN_STATUSES)
    assert outcome.applied
    await db_session.commit()
    assert await match_store.get_match_view(db_session, match_id) is None
    assert await count_sets(db_session, match_id) == 0


@pytest.mark.asyncio
async def test_list_matches_filters_by_status(db_session, league):
    pending_id = await new_pending(db_session)
    claimed_id = await new_pending(db_session, home="p-carla")
    await match_store.claim_pending(db_session, claimed_id, "p-bruno")
    await db_session.commit()

    everything = await match_store.list_matches(db_session, TOURNAMENT_ID, DIVISION_ID)
    assert {m.id for m in everything} == {pending_id, claimed_id}

    open_only = await match_store.list_matches(
        db_session, TOURNAMENT_ID, DIVISION_ID, statuses=[MatchStatus.PENDING]
    )
    assert [m.id for m in open_only] == [pending_id]
    assert isinstance(open_only[0], PendingMatch)
