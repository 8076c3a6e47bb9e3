# betbot/api/settlement.py
"""
Settlement Processor

Settles every bet on a match once the final score is known, or refunds them
all when the match is cancelled. Each bet is applied in its own savepoint so
one bad user record cannot stop the rest of the payouts; the outcome of every
bet is returned to the caller instead of only being logged.
"""

from collections import namedtuple
from datetime import datetime, timezone
import logging
from sqlalchemy.exc import SQLAlchemyError
from betbot.models import Match, Bet, User
from betbot.services import rejections
from betbot.services.rejections import reject
from betbot.services.lifecycle import check_not_terminal, mark_completed, mark_aborted
from betbot.services.outcome import (
    resolve, parse_handicap_line, market_type, odds_for_selection, calculate_winnings,
    DRAW, MARKET_ASIAN_HANDICAP,
)
from betbot.services.user_service import log_points_change
from betbot.sse_events import try_announce_match_state, announce_points_update

log = logging.getLogger(__name__)

WON = 'won'
LOST = 'lost'
REFUNDED = 'refunded'
SKIPPED = 'skipped'
FAILED = 'failed'

BetSettlement = namedtuple('BetSettlement', ['bet_id', 'user_id', 'outcome', 'amount', 'detail'])
SettlementReport = namedtuple('SettlementReport', ['match_id', 'result', 'home_score', 'away_score', 'items', 'anomalies'])
CancellationReport = namedtuple('CancellationReport', ['match_id', 'items', 'anomalies'])


def calculate_roi(profits, investment):
    """ROI as tracked on user records: (profit / invested) * 100 - 100."""
    if not investment:
        return 0.0
    return (profits / investment) * 100 - 100


def apply_bet_result(user, stake, won, winnings, market, now):
    """
    Applies one settled bet to a user's running statistics, relative to the
    values currently stored on the user. ROI figures use the post-increment
    investment and the profit as stored before this bet.
    """
    stored_profits = user.profits

    user.points += winnings
    if won:
        user.bets_correct += 1
        user.profits += winnings - stake
        user.win_streak_current += 1
        user.loss_streak_current = 0
        if user.win_streak_current > user.win_streak_max:
            user.win_streak_max = user.win_streak_current
    else:
        user.bets_incorrect += 1
        user.loss += stake
        user.loss_streak_current += 1
        user.win_streak_current = 0
        if user.loss_streak_current > user.loss_streak_max:
            user.loss_streak_max = user.loss_streak_current

    user.stake_investment += stake
    if market == MARKET_ASIAN_HANDICAP:
        user.investment_asian_handicap += stake
        user.roi_asian_handicap = calculate_roi(stored_profits, user.investment_asian_handicap)
    else:
        user.investment_1x2 += stake
        user.roi_1x2 = calculate_roi(stored_profits, user.investment_1x2)
    user.roi = calculate_roi(stored_profits, user.stake_investment)
    user.updated_at = now


def _match_result(match, home_score, away_score, anomalies):
    line = match.handicap
    if line is not None:
        try:
            parse_handicap_line(line)
        except ValueError:
            log.warning(f"Match {match.match_id}: malformed handicap line '{line}', settling on the raw score.")
            anomalies.append(f"Malformed handicap line '{line}' ignored.")
            line = None
    return resolve(home_score, away_score, line)


def settle_bets_for_match(session, match_id, home_score, away_score, now=None):
    """
    Settles all pending bets for a given match after results are known.
    Updates match result flags, bet statuses, user statistics and points history.

    Returns (True, SettlementReport) or (False, Rejection).
    """
    for score in (home_score, away_score):
        if not isinstance(score, int) or isinstance(score, bool) or score < 0:
            return reject(rejections.INVALID_SCORE, "Scores must be non-negative whole numbers.")

    now = now or datetime.now(timezone.utc)
    log.info(f"Attempting to settle match ID: {match_id} with score {home_score}-{away_score}")

    try:
        match = session.query(Match).filter(Match.match_id == match_id).with_for_update().first()
        if not match:
            session.rollback()
            return reject(rejections.NOT_FOUND, f"Match ID {match_id} not found.")

        terminal = check_not_terminal(match)
        if terminal:
            session.rollback()
            return terminal

        anomalies = []
        result = _match_result(match, home_score, away_score, anomalies)
        market = market_type(match)
        log.info(f"Match {match_id}: result determined as '{result}' ({market} market)")

        pending_bets = match.bets.filter(Bet.status == 'Pending').all()
        log.info(f"Found {len(pending_bets)} pending bets for match ID: {match_id}")

        items = []
        for bet in pending_bets:
            items.append(_settle_one(session, match, bet, result, market, now, anomalies))

        mark_completed(match, home_score, away_score, result == DRAW, now=now)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"ERROR during settlement for match ID {match_id}", exc_info=True)
        raise

    log.info(f"Successfully settled match {match_id} and {len(items)} bets.")

    if not try_announce_match_state(match, 'settled'):
        anomalies.append("Match announcement could not be updated.")
    for item in items:
        if item.outcome == WON:
            user = session.get(User, item.user_id)
            announce_points_update(item.user_id, user.points, 'bet_settlement', match_id=match_id)

    return True, SettlementReport(match_id, result, home_score, away_score, items, anomalies)


def _settle_one(session, match, bet, result, market, now, anomalies):
    user = session.get(User, bet.user_id)
    if not user:
        log.warning(f"User {bet.user_id} not found for Bet ID {bet.bet_id}, skipping settlement for this bet.")
        anomalies.append(f"Bet {bet.bet_id}: user {bet.user_id} missing.")
        return BetSettlement(bet.bet_id, bet.user_id, SKIPPED, 0, "User record not found.")

    won = bet.selection == result
    odds = odds_for_selection(match, bet.selection) if won else None
    winnings = calculate_winnings(bet.amount, odds) if won else 0

    try:
        with session.begin_nested():
            previous_balance = user.points
            apply_bet_result(user, bet.amount, won, winnings, market, now)

            bet.status = 'Won' if won else 'Lost'
            bet.payout = winnings
            bet.settlement_time = now
            log_points_change(session, user, 'Bet Win' if won else 'Bet Loss', winnings, previous_balance,
                              related_bet=bet, match_id=match.match_id, timestamp=now)
    except Exception as e:
        # The savepoint has already been rolled back for this bet only
        log.error(f"Failed to settle Bet ID {bet.bet_id} for user {bet.user_id}: {e}", exc_info=True)
        anomalies.append(f"Bet {bet.bet_id}: update failed.")
        return BetSettlement(bet.bet_id, bet.user_id, FAILED, 0, str(e))

    log.info(f"   Bet {bet.bet_id} user {user.user_id}: {'Won' if won else 'Lost'}, points {previous_balance} -> {user.points} (+{winnings})")
    return BetSettlement(bet.bet_id, bet.user_id, WON if won else LOST, winnings, None)


def cancel_match(session, match_id, now=None):
    """
    Voids a match: every pending stake is returned, win/loss statistics are
    left alone and the match is flagged aborted.

    Returns (True, CancellationReport) or (False, Rejection).
    """
    now = now or datetime.now(timezone.utc)
    log.info(f"Attempting to cancel match ID: {match_id}")

    try:
        match = session.query(Match).filter(Match.match_id == match_id).with_for_update().first()
        if not match:
            session.rollback()
            return reject(rejections.NOT_FOUND, f"Match ID {match_id} not found.")

        terminal = check_not_terminal(match)
        if terminal:
            session.rollback()
            return terminal

        anomalies = []
        items = []
        for bet in match.bets.filter(Bet.status == 'Pending').all():
            items.append(_refund_one(session, match, bet, now, anomalies))

        mark_aborted(match, now=now)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"ERROR during cancellation of match ID {match_id}", exc_info=True)
        raise

    log.info(f"Cancelled match {match_id}; {sum(1 for i in items if i.outcome == REFUNDED)} stakes refunded.")

    if not try_announce_match_state(match, 'cancelled'):
        anomalies.append("Match announcement could not be updated.")
    for item in items:
        if item.outcome == REFUNDED:
            user = session.get(User, item.user_id)
            announce_points_update(item.user_id, user.points, 'bet_refund', match_id=match_id)

    return True, CancellationReport(match_id, items, anomalies)


def _refund_one(session, match, bet, now, anomalies):
    user = session.get(User, bet.user_id)
    if not user:
        log.warning(f"User {bet.user_id} not found for Bet ID {bet.bet_id}, nothing to refund.")
        anomalies.append(f"Bet {bet.bet_id}: user {bet.user_id} missing.")
        return BetSettlement(bet.bet_id, bet.user_id, SKIPPED, 0, "User record not found.")

    try:
        with session.begin_nested():
            previous_balance = user.points
            user.points += bet.amount
            user.bets_withdrawn += 1
            user.updated_at = now

            bet.status = 'Void'
            bet.payout = bet.amount
            bet.settlement_time = now
            log_points_change(session, user, 'Bet Refund', bet.amount, previous_balance,
                              related_bet=bet, match_id=match.match_id, timestamp=now)
    except Exception as e:
        log.error(f"Failed to refund Bet ID {bet.bet_id} for user {bet.user_id}: {e}", exc_info=True)
        anomalies.append(f"Bet {bet.bet_id}: refund failed.")
        return BetSettlement(bet.bet_id, bet.user_id, FAILED, 0, str(e))

    return BetSettlement(bet.bet_id, bet.user_id, REFUNDED, bet.amount, None)
