# betbot/services/betting_service.py
"""
Bet Ledger

Validates and records a stake against a match. The bet row, the match counter,
the user's debit and the history entry are written in one transaction, so a
recorded bet always has its debit. The match row is locked for the duration
of the placement and the debit is a conditional UPDATE, so two concurrent
placements for the same user cannot both pass the duplicate and funds checks.
"""

import logging
from datetime import datetime, timezone
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from betbot.models import Match, Bet, User
from betbot.services import rejections
from betbot.services.rejections import reject
from betbot.services.lifecycle import can_accept_bets, kickoff_passed, mark_started
from betbot.services.outcome import SELECTIONS, DRAW
from betbot.services.user_service import get_or_create_user, log_points_change
from betbot.sse_events import try_announce_match_state, announce_points_update

log = logging.getLogger(__name__)

SIMPLE_MODE = 'simple'
EXTENDED_MODE = 'extended'

STARTING_POINTS = {
    SIMPLE_MODE: 100,
    EXTENDED_MODE: 250,
}


def _rejected(session, reason, message):
    # Releases the match row lock; nothing was written
    session.rollback()
    log.info(f"Bet rejected ({reason}): {message}")
    return reject(reason, message)


def place_bet(session, match_id, user_id, username, selection, stake=None,
              mode=SIMPLE_MODE, default_stake=100, starting_points=None, now=None):
    """
    Core service function to place a bet for a given user.

    Simple mode always stakes `default_stake` and allows one bet per match.
    Extended mode takes the requested stake and allows further stakes on the
    selection already backed.

    Returns:
        (True, Bet) or (False, Rejection)
    """
    if mode not in (SIMPLE_MODE, EXTENDED_MODE):
        raise ValueError(f"Unknown betting mode '{mode}'.")
    if selection not in SELECTIONS:
        return reject(rejections.INVALID_SELECTION, f"Invalid selection '{selection}'. Choose home, away or draw.")

    if mode == SIMPLE_MODE:
        stake = default_stake
    elif not isinstance(stake, int) or isinstance(stake, bool) or stake < 1:
        return reject(rejections.INVALID_STAKE, "Please enter a valid stake amount!")

    if starting_points is None:
        starting_points = STARTING_POINTS[mode]
    now = now or datetime.now(timezone.utc)

    try:
        match = session.query(Match).filter(Match.match_id == match_id).with_for_update().first()
        if not match:
            return _rejected(session, rejections.NOT_FOUND, "Match not found!")

        if not can_accept_bets(match):
            return _rejected(
                session, rejections.CLOSED,
                f"This match is no longer accepting bets! Started? {match.is_started} "
                f"Completed? {match.is_completed} Aborted? {match.is_aborted} Bets Locked? {match.bets_locked}"
            )

        if kickoff_passed(match, now):
            if mark_started(match, now):
                session.commit()
                try_announce_match_state(match, 'started')
            else:
                session.rollback()
            return reject(rejections.CLOSED, "This match has already started and is no longer accepting bets!")

        if selection == DRAW and not match.offers_draw:
            return _rejected(session, rejections.INVALID_SELECTION, "This match does not offer a draw market.")

        existing_bet = match.bets.filter(Bet.user_id == user_id).first()
        if existing_bet:
            if mode == SIMPLE_MODE:
                return _rejected(session, rejections.ALREADY_BET, "You have already placed a bet on this match!")
            if existing_bet.selection != selection:
                return _rejected(
                    session, rejections.SELECTION_CONFLICT,
                    "You have already placed a bet on this match for a different team! "
                    "You can only place additional bets for the same team."
                )

        user, created = get_or_create_user(session, user_id, username, starting_points, now=now)
        if stake > user.points:
            if created:
                # The lazily created account is kept even though the bet is refused
                session.commit()
            else:
                session.rollback()
            return reject(rejections.INSUFFICIENT_FUNDS, "You don't have enough points to place this bet!")

        session.flush()
        previous_balance = user.points
        debit = session.execute(
            update(User)
            .where(User.user_id == user_id, User.points >= stake)
            .values(points=User.points - stake, bets_placed=User.bets_placed + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if debit.rowcount == 0:
            # Balance moved underneath us since it was read
            return _rejected(session, rejections.INSUFFICIENT_FUNDS, "You don't have enough points to place this bet!")
        session.refresh(user)

        new_bet = Bet(
            match_id=match.match_id,
            user_id=user_id,
            selection=selection,
            amount=stake,
            status='Pending',
            placement_time=now,
        )
        session.add(new_bet)
        match.total_bets = (match.total_bets or 0) + 1
        match.updated_at = now
        session.flush() # Get the new_bet.bet_id

        log_points_change(session, user, 'Bet Placement', -stake, previous_balance,
                          related_bet=new_bet, match_id=match.match_id, timestamp=now)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error during bet placement on match {match_id} by user {user_id}", exc_info=True)
        raise

    log.info(f"Bet {new_bet.bet_id}: user {user_id} staked {stake} on {selection} for match {match_id}. Balance {previous_balance} -> {user.points}")
    try_announce_match_state(match, 'bet_placed')
    announce_points_update(user_id, user.points, 'bet_placement', match_id=match_id)
    return True, new_bet
