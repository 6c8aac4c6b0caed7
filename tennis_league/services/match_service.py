"""
Match lifecycle service.

Owns the match state machine:

    create (no opponent)        -> pending
    create (with opponent)      -> scheduled
    create (opponent + result)  -> played
    claim                          pending -> scheduled
    record result                  pending / scheduled / played -> played
    edit schedule                  pending / scheduled -> same state
    cancel / delete                pending / scheduled / played -> deleted

Every state-dependent write is a conditional write against the match store.
Zero affected rows is reported as a conflict; nothing here retries with stale
intent, the caller re-fetches and decides again.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tennis_league.database.models import Match, MatchStatus, Player, PlayerRole
from tennis_league.models.schemas import (
    CreateMatchRequest,
    MatchResultInput,
    MatchView,
    RecordResultRequest,
    ScheduleFields,
    SetScore,
    UpdateScheduleRequest,
)
from tennis_league.services import directory_service, match_store
from tennis_league.services.home_away_service import assign_sides
from tennis_league.services.match_events import (
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
    MatchChangedEvent,
    MatchEventFeed,
)
from tennis_league.services.pairing_service import ACTIVE_PAIRING_STATUSES, pairing_conflict_exists
from tennis_league.utils.datetime_utils import time_block_for

logger = logging.getLogger(__name__)


# --- Custom exceptions ---


class MatchValidationError(ValueError):
    """Raised when input is rejected before any write (missing opponent, no valid sets, ...)."""


class MatchNotFoundError(ValueError):
    """Raised when a match id does not exist (or no longer exists)."""


class MatchConflictError(ValueError):
    """Base class for conflicts with the current state of the match store."""


class DuplicatePairingError(MatchConflictError):
    """Raised when the two players already have a scheduled or played match in this scope."""


class MatchAlreadyClaimedError(MatchConflictError):
    """Raised when an open match was taken by someone else first."""


class MatchNoLongerEditableError(MatchConflictError):
    """Raised when a match changed state (played, deleted, edited) since it was read."""


class MatchAuthorizationError(ValueError):
    """Raised when the actor may not perform the operation on this match."""


# ============================================================================
# Helpers
# ============================================================================

@dataclass(frozen=True)
class ResultSummary:
    """Valid sets of a result and the aggregates derived from them."""

    sets: Tuple[Tuple[int, int], ...]
    home_sets_won: int
    away_sets_won: int
    home_games_won: int
    away_games_won: int


def summarize_sets(sets: List[SetScore]) -> ResultSummary:
    """
    Keep the sets with both scores present and aggregate them.

    A set counts for the side with more games; an even set counts for nobody.

    Raises:
        MatchValidationError: If no set has both scores
    """
    valid = tuple((s.home_games, s.away_games) for s in sets if s.is_complete)
    if not valid:
        raise MatchValidationError("Enter valid scores for at least one set")
    return ResultSummary(
        sets=valid,
        home_sets_won=sum(1 for h, a in valid if h > a),
        away_sets_won=sum(1 for h, a in valid if a > h),
        home_games_won=sum(h for h, _ in valid),
        away_games_won=sum(a for _, a in valid),
    )


def _result_values(result: MatchResultInput, summary: ResultSummary) -> Dict:
    return {
        "home_sets_won": summary.home_sets_won,
        "away_sets_won": summary.away_sets_won,
        "home_games_won": summary.home_games_won,
        "away_games_won": summary.away_games_won,
        "home_had_drink": result.home_had_drink,
        "away_had_drink": result.away_had_drink,
        "home_drinks": result.home_drinks if result.home_had_drink else 0,
        "away_drinks": result.away_drinks if result.away_had_drink else 0,
        "anecdote": result.anecdote,
    }


def _schedule_values(fields: ScheduleFields) -> Dict:
    return {
        "date": fields.date,
        "time": fields.time,
        "time_block": time_block_for(fields.time),
        "area_id": fields.area_id,
        "venue_detail": fields.venue_detail,
    }


def is_admin(actor: Player) -> bool:
    return actor.role == PlayerRole.ADMIN


def can_manage(match: Match, actor: Player) -> bool:
    """Participants, the creator and admins may edit, cancel or delete a match."""
    return (
        actor.id in (match.home_player_id, match.away_player_id, match.created_by)
        or is_admin(actor)
    )


async def _require_match(session: AsyncSession, match_id: str) -> Match:
    match = await match_store.get_match(session, match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


async def _require_registered(session: AsyncSession, player_id: str, tournament_id: str, division_id: str) -> None:
    if not await directory_service.is_registered(session, player_id, tournament_id, division_id):
        raise MatchValidationError(f"Player {player_id} is not registered in this division/tournament")


async def _require_area(session: AsyncSession, area_id: Optional[str]) -> None:
    if area_id is not None and await directory_service.get_area(session, area_id) is None:
        raise MatchValidationError(f"Unknown area {area_id}")


async def _publish(feed: Optional[MatchEventFeed], kind: str, view: MatchView) -> None:
    if feed is None:
        return
    await feed.publish(
        MatchChangedEvent(
            kind=kind,
            match_id=view.id,
            status=MatchStatus(view.status),
            tournament_id=view.tournament_id,
            division_id=view.division_id,
            match=view,
        )
    )


async def _committed_view(session: AsyncSession, match_id: str) -> MatchView:
    await session.commit()
    return await match_store.get_match_view(session, match_id)


# ============================================================================
# Operations
# ============================================================================

async def create_match(
    session: AsyncSession,
    request: CreateMatchRequest,
    actor: Player,
    feed: Optional[MatchEventFeed] = None,
) -> MatchView:
    """
    Create an open (pending), scheduled or played match.

    Args:
        session: Database session
        request: Validated creation request
        actor: Player performing the action
        feed: Optional change feed to notify after commit

    Returns:
        The created match

    Raises:
        MatchValidationError: Unregistered players, unknown area, no valid sets
        MatchAuthorizationError: Actor is neither one of the players nor an admin
        DuplicatePairingError: The pair already has a scheduled or played match
    """
    t_id, d_id = request.tournament_id, request.division_id
    home_id = request.home_player_id or actor.id
    away_id = request.away_player_id

    if away_id is None:
        if home_id != actor.id and not is_admin(actor):
            raise MatchAuthorizationError("Only admins can publish an open match for another player")
    elif actor.id not in (home_id, away_id) and not is_admin(actor):
        raise MatchAuthorizationError("Only the players involved or an admin can create this match")

    await _require_registered(session, home_id, t_id, d_id)
    if away_id is not None:
        if away_id == home_id:
            raise MatchValidationError("A player cannot play against themselves")
        await _require_registered(session, away_id, t_id, d_id)
    await _require_area(session, request.area_id)

    if request.auto_assign_home and away_id is not None:
        home_id, away_id = assign_sides(d_id, t_id, home_id, away_id)

    summary = summarize_sets(request.result.sets) if request.result is not None else None

    if away_id is not None and await pairing_conflict_exists(
        session, t_id, d_id, home_id, away_id, ACTIVE_PAIRING_STATUSES
    ):
        raise DuplicatePairingError(
            "These players already have a scheduled or played match in this division/tournament"
        )

    if away_id is None:
        status = MatchStatus.PENDING
    elif summary is None:
        status = MatchStatus.SCHEDULED
    else:
        status = MatchStatus.PLAYED

    fields = {
        "tournament_id": t_id,
        "division_id": d_id,
        "status": status,
        "home_player_id": home_id,
        "away_player_id": away_id,
        "created_by": actor.id,
        **_schedule_values(request),
    }
    if summary is not None:
        fields.update(_result_values(request.result, summary))

    try:
        match = await match_store.insert_match(session, **fields)
        if summary is not None:
            await match_store.insert_sets(session, match.id, summary.sets)
        view = await _committed_view(session, match.id)
    except SQLAlchemyError:
        await session.rollback()
        raise

    logger.info(f"Match {view.id} created as {status.value} by {actor.id} in {t_id}/{d_id}")
    await _publish(feed, EVENT_INSERT, view)
    return view


async def claim_match(
    session: AsyncSession,
    match_id: str,
    actor: Player,
    feed: Optional[MatchEventFeed] = None,
) -> MatchView:
    """
    Join an open match as the away player.

    The write applies only if the match is still pending with no away player;
    when another player got there first this raises MatchAlreadyClaimedError.

    Raises:
        MatchNotFoundError, MatchValidationError, MatchAuthorizationError,
        DuplicatePairingError, MatchAlreadyClaimedError
    """
    match = await _require_match(session, match_id)
    if match.status != MatchStatus.PENDING or match.away_player_id is not None:
        raise MatchAlreadyClaimedError("Someone already joined this match")
    if match.home_player_id == actor.id:
        raise MatchValidationError("You cannot join your own match")
    if not await directory_service.is_registered(session, actor.id, match.tournament_id, match.division_id):
        raise MatchAuthorizationError("Only players registered in this division can join the match")
    if await pairing_conflict_exists(
        session,
        match.tournament_id,
        match.division_id,
        actor.id,
        match.home_player_id,
        ACTIVE_PAIRING_STATUSES,
    ):
        raise DuplicatePairingError("You already have a scheduled or played match against this player")

    try:
        outcome = await match_store.claim_pending(session, match_id, actor.id)
        if outcome.lost_race:
            await session.rollback()
            logger.info(f"Claim of match {match_id} by {actor.id} lost the race")
            raise MatchAlreadyClaimedError("Someone already joined this match")
        view = await _committed_view(session, match_id)
    except SQLAlchemyError:
        await session.rollback()
        raise

    logger.info(f"Match {match_id} claimed by {actor.id}")
    await _publish(feed, EVENT_UPDATE, view)
    return view


async def record_result(
    session: AsyncSession,
    match_id: str,
    request: RecordResultRequest,
    actor: Player,
    feed: Optional[MatchEventFeed] = None,
) -> MatchView:
    """
    Record or replace the result of a match; the match ends up played.

    The full set list and every aggregate are replaced, so recording the same
    input twice leaves the same rows. A pending match needs ``away_player_id``.

    Raises:
        MatchNotFoundError, MatchValidationError, MatchAuthorizationError,
        DuplicatePairingError, MatchNoLongerEditableError
    """
    match = await _require_match(session, match_id)
    expected_status = MatchStatus(match.status)

    if expected_status == MatchStatus.PENDING:
        away_id = request.away_player_id
        if not away_id:
            raise MatchValidationError("An opponent is required to record a result for an open match")
        if away_id == match.home_player_id:
            raise MatchValidationError("A player cannot play against themselves")
        allowed = can_manage(match, actor) or actor.id == away_id
    else:
        away_id = match.away_player_id
        if request.away_player_id and request.away_player_id != away_id:
            raise MatchValidationError("The opponent of a scheduled match cannot be changed")
        allowed = can_manage(match, actor)
    if not allowed:
        raise MatchAuthorizationError("Only the players, the creator or an admin can record this result")

    summary = summarize_sets(request.sets)

    if expected_status == MatchStatus.PENDING:
        await _require_registered(session, away_id, match.tournament_id, match.division_id)
    if expected_status != MatchStatus.PLAYED and await pairing_conflict_exists(
        session,
        match.tournament_id,
        match.division_id,
        match.home_player_id,
        away_id,
        ACTIVE_PAIRING_STATUSES,
        exclude_match_id=match_id,
    ):
        raise DuplicatePairingError("A result between these players already exists; edit that match instead")

    values = _result_values(request, summary)
    if expected_status == MatchStatus.PENDING:
        values["away_player_id"] = away_id

    try:
        outcome = await match_store.write_result(
            session,
            match_id,
            expected_status,
            values,
            expected_away_player_id=match.away_player_id,
        )
        if outcome.lost_race:
            await session.rollback()
            logger.info(f"Result for match {match_id} rejected: state changed since it was read")
            raise MatchNoLongerEditableError("The match changed since it was loaded; refresh and try again")
        await match_store.replace_sets(session, match_id, summary.sets)
        view = await _committed_view(session, match_id)
    except SQLAlchemyError:
        await session.rollback()
        raise

    logger.info(
        f"Result recorded for match {match_id} by {actor.id}: "
        f"{summary.home_sets_won}-{summary.away_sets_won} sets"
    )
    await _publish(feed, EVENT_UPDATE, view)
    return view


async def update_schedule(
    session: AsyncSession,
    match_id: str,
    request: UpdateScheduleRequest,
    actor: Player,
    feed: Optional[MatchEventFeed] = None,
) -> MatchView:
    """
    Change date, time or place of a pending or scheduled match.

    Raises:
        MatchNotFoundError, MatchAuthorizationError, MatchValidationError,
        MatchNoLongerEditableError
    """
    match = await _require_match(session, match_id)
    if match.status not in match_store.OPEN_STATUSES:
        raise MatchNoLongerEditableError("Only pending or scheduled matches can be rescheduled")
    if not can_manage(match, actor):
        raise MatchAuthorizationError("Only the players, the creator or an admin can edit this match")
    await _require_area(session, request.area_id)

    try:
        outcome = await match_store.update_schedule(session, match_id, _schedule_values(request))
        if outcome.lost_race:
            await session.rollback()
            logger.info(f"Schedule edit of match {match_id} rejected: no longer pending/scheduled")
            raise MatchNoLongerEditableError(
                "The match changed state or was removed by someone else; refresh and try again"
            )
        view = await _committed_view(session, match_id)
    except SQLAlchemyError:
        await session.rollback()
        raise

    logger.info(f"Schedule of match {match_id} updated by {actor.id}")
    await _publish(feed, EVENT_UPDATE, view)
    return view


async def delete_match(
    session: AsyncSession,
    match_id: str,
    actor: Player,
    feed: Optional[MatchEventFeed] = None,
) -> None:
    """
    Cancel an open/scheduled match or delete a played one, with all its sets.

    The delete asserts the status observed when the match was read: cancelling a
    scheduled match never removes a result recorded in the meantime.

    Raises:
        MatchNotFoundError, MatchAuthorizationError, MatchNoLongerEditableError
    """
    match = await _require_match(session, match_id)
    if not can_manage(match, actor):
        raise MatchAuthorizationError("Only the players, the creator or an admin can delete this match")

    if match.status in match_store.OPEN_STATUSES:
        expected = match_store.OPEN_STATUSES
    else:
        expected = (MatchStatus.PLAYED,)
    tournament_id, division_id = match.tournament_id, match.division_id

    try:
        outcome = await match_store.delete_match(session, match_id, expected)
        if outcome.lost_race:
            # Restores the sets deleted in the same transaction
            await session.rollback()
            logger.info(f"Delete of match {match_id} rejected: state changed since it was read")
            raise MatchNoLongerEditableError("The match changed state; refresh and try again")
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise

    logger.info(f"Match {match_id} deleted by {actor.id}")
    if feed is not None:
        await feed.publish(
            MatchChangedEvent(
                kind=EVENT_DELETE,
                match_id=match_id,
                status=None,
                tournament_id=tournament_id,
                division_id=division_id,
            )
        )
