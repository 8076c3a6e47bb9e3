# betbot/services/league_service.py
"""
League & Match administration.

Admin-only operations that create and edit leagues and the matches posted in
them. A league owns one announcement channel, and no two active leagues may
share a channel. An active league holds a bounded number of live matches.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from sqlalchemy.exc import SQLAlchemyError
from betbot.models import League, Match
from betbot.services import rejections
from betbot.services.rejections import reject
from betbot.services.lifecycle import check_not_terminal, set_betting_lock, kickoff_passed
from betbot.services.outcome import HANDICAP_LINES
from betbot.sse_events import try_announce_match_state
from betbot.utils.dates import ensure_utc
from betbot.utils.text_utils import normalize_team_name, normalize_handicap

log = logging.getLogger(__name__)


def _channel_owner(session, channel, exclude_league_id=None):
    query = session.query(League).filter(League.channel == channel, League.is_completed.is_(False))
    if exclude_league_id:
        query = query.filter(League.league_id != exclude_league_id)
    return query.first()


def _channel_in_use(owner):
    return reject(
        rejections.CHANNEL_IN_USE,
        f"This channel is already in use by another league! Name: {owner.name} ID: {owner.league_id}",
    )


def _to_odds(value, label, required=True):
    if value is None or str(value).strip() == '':
        if required:
            raise ValueError(f"{label} odds are required.")
        return None
    try:
        odds = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{label} odds must be a decimal number.")
    # 0 is how the bot sends "no draw market"
    if not required and odds == 0:
        return None
    if not odds.is_finite() or odds < 1:
        raise ValueError(f"{label} odds must be decimal odds of at least 1.0.")
    return odds


def list_leagues(session, include_completed=True):
    query = session.query(League)
    if not include_completed:
        query = query.filter(League.is_completed.is_(False))
    return query.order_by(League.league_id).all()


def get_league(session, league_id):
    league = session.get(League, league_id)
    if not league:
        return reject(rejections.NOT_FOUND, "League not found!")
    return True, league


def create_league(session, name, description, channel, start_date, end_date, now=None):
    if not name or not channel or start_date is None or end_date is None:
        return reject(rejections.INVALID_INPUT, "Please provide all the required fields")
    start_date = ensure_utc(start_date)
    end_date = ensure_utc(end_date)
    if end_date < start_date:
        return reject(rejections.INVALID_INPUT, "League end date must not be before its start date.")

    now = now or datetime.now(timezone.utc)
    try:
        owner = _channel_owner(session, channel)
        if owner:
            return _channel_in_use(owner)

        league = League(
            name=name.strip(),
            description=(description or '').strip(),
            channel=channel,
            start_date=start_date,
            end_date=end_date,
            is_completed=False,
            updated_at=now,
        )
        session.add(league)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error creating league '{name}'", exc_info=True)
        raise

    log.info(f"League {league.league_id} '{league.name}' created on channel {league.channel}.")
    return True, league


def update_league(session, league_id, name=None, description=None, start_date=None, end_date=None,
                  is_completed=None, channel=None, now=None):
    if all(v is None for v in (name, description, start_date, end_date, is_completed, channel)):
        return reject(rejections.NO_CHANGES, "Please provide at least one field to update")

    now = now or datetime.now(timezone.utc)
    try:
        league = session.get(League, league_id)
        if not league:
            return reject(rejections.NOT_FOUND, "League not found!")

        new_start = ensure_utc(start_date if start_date is not None else league.start_date)
        new_end = ensure_utc(end_date if end_date is not None else league.end_date)
        if new_end < new_start:
            return reject(rejections.INVALID_INPUT, "League end date must not be before its start date.")

        target_channel = channel or league.channel
        will_be_active = not is_completed if is_completed is not None else not league.is_completed
        if will_be_active and (channel or league.is_completed):
            owner = _channel_owner(session, target_channel, exclude_league_id=league.league_id)
            if owner:
                return _channel_in_use(owner)

        if name:
            league.name = name.strip()
        if description:
            league.description = description.strip()
        league.start_date = new_start
        league.end_date = new_end
        league.channel = target_channel
        if is_completed is not None:
            league.is_completed = bool(is_completed)
        league.updated_at = now
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error updating league {league_id}", exc_info=True)
        raise

    log.info(f"League {league_id} updated.")
    return True, league


def end_league(session, league_id, now=None):
    now = now or datetime.now(timezone.utc)
    try:
        league = session.get(League, league_id)
        if not league:
            return reject(rejections.NOT_FOUND, "League not found!")
        if league.is_completed:
            return reject(rejections.NO_CHANGES, "No changes made! League is already completed.")

        league.is_completed = True
        league.updated_at = now
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error ending league {league_id}", exc_info=True)
        raise

    log.info(f"League {league_id} marked as completed.")
    return True, league


def count_active_matches(session, league_id):
    return session.query(Match).filter(
        Match.league_id == league_id,
        Match.is_completed.is_(False),
        Match.is_aborted.is_(False),
    ).count()


def create_match(session, league_id, home_team, away_team, home_odds, away_odds, match_date,
                 draw_odds=None, handicap=None, venue=None, max_active_matches=10, now=None):
    """
    Posts a new match into an active league. A '+' handicap is recorded for the
    home side and a '-' handicap for the away side.

    Returns (True, Match) or (False, Rejection).
    """
    try:
        home_team = normalize_team_name(home_team)
        away_team = normalize_team_name(away_team)
        home_odds = _to_odds(home_odds, 'Home')
        away_odds = _to_odds(away_odds, 'Away')
        draw_odds = _to_odds(draw_odds, 'Draw', required=False)
    except ValueError as e:
        return reject(rejections.INVALID_INPUT, str(e))
    if home_team.lower() == away_team.lower():
        return reject(rejections.INVALID_INPUT, "Home and away teams must differ.")
    if match_date is None:
        return reject(rejections.INVALID_INPUT, "Match date is required.")

    home_handicap = away_handicap = None
    if handicap not in (None, ''):
        try:
            line = normalize_handicap(handicap)
        except ValueError as e:
            return reject(rejections.INVALID_HANDICAP, str(e))
        if line not in HANDICAP_LINES:
            return reject(rejections.INVALID_HANDICAP, f"Handicap {line} is not a quarter-point line between -4 and +4.")
        if line.startswith('+'):
            home_handicap = line
        else:
            away_handicap = line

    now = now or datetime.now(timezone.utc)
    try:
        league = session.get(League, league_id)
        if not league:
            return reject(rejections.NOT_FOUND, "League not found!")
        if league.is_completed:
            return reject(rejections.LEAGUE_COMPLETED, "League is completed!")

        if count_active_matches(session, league_id) >= max_active_matches:
            return reject(
                rejections.LEAGUE_FULL,
                f"Maximum active matches limit ({max_active_matches}) reached for this league!",
            )

        match = Match(
            league_id=league.league_id,
            message_channel=league.channel,
            home_team=home_team,
            away_team=away_team,
            home_odds=home_odds,
            away_odds=away_odds,
            draw_odds=draw_odds,
            home_handicap=home_handicap,
            away_handicap=away_handicap,
            match_date=match_date,
            venue=venue,
            total_bets=0,
            bets_locked=False,
            is_started=False,
            is_completed=False,
            is_aborted=False,
            is_draw=False,
            updated_at=now,
        )
        session.add(match)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error creating match {home_team} vs {away_team} in league {league_id}", exc_info=True)
        raise

    if kickoff_passed(match, now):
        log.warning(f"Match {match.match_id} created with a kickoff in the past; it will not accept bets.")
    log.info(f"Match {match.match_id} created: {home_team} vs {away_team} in league {league_id}.")
    try_announce_match_state(match, 'created')
    return True, match


def set_match_message(session, match_id, message_id):
    """Records where the bot posted the match announcement."""
    try:
        match = session.get(Match, match_id)
        if not match:
            return reject(rejections.NOT_FOUND, "Match not found!")
        match.message_id = message_id
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error recording message for match {match_id}", exc_info=True)
        raise
    return True, match


def update_match(session, match_id, home_odds=None, away_odds=None, bets_locked=None, now=None):
    """Odds changes and the admin betting lock. Terminal matches cannot change."""
    if home_odds is None and away_odds is None and bets_locked is None:
        return reject(rejections.NO_CHANGES, "Please provide at least one field to update")
    try:
        home_odds = _to_odds(home_odds, 'Home', required=False)
        away_odds = _to_odds(away_odds, 'Away', required=False)
    except ValueError as e:
        return reject(rejections.INVALID_INPUT, str(e))

    now = now or datetime.now(timezone.utc)
    try:
        match = session.get(Match, match_id)
        if not match:
            return reject(rejections.NOT_FOUND, "Match not found!")

        terminal = check_not_terminal(match)
        if terminal:
            return terminal

        if home_odds is not None:
            match.home_odds = home_odds
        if away_odds is not None:
            match.away_odds = away_odds
        if bets_locked is not None:
            set_betting_lock(match, bets_locked, now=now)
        match.updated_at = now
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error updating match {match_id}", exc_info=True)
        raise

    log.info(f"Match {match_id} updated.")
    try_announce_match_state(match, 'updated')
    return True, match


def get_match(session, match_id):
    match = session.get(Match, match_id)
    if not match:
        return reject(rejections.NOT_FOUND, "Match not found!")
    return True, match


def list_matches(session, league_id=None, include_terminal=False):
    query = session.query(Match)
    if league_id:
        query = query.filter(Match.league_id == league_id)
    if not include_terminal:
        query = query.filter(Match.is_completed.is_(False), Match.is_aborted.is_(False))
    return query.order_by(Match.match_id).all()
