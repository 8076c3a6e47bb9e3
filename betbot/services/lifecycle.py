# betbot/services/lifecycle.py
"""
Match Lifecycle State Machine

    Open --(admin lock / kickoff passes)--> Locked
    Open | Locked --(settle)--> Completed   (terminal)
    Open | Locked --(cancel)--> Aborted     (terminal)

A started match reports as Locked. Nothing leaves Completed or Aborted.
"""

import logging
from datetime import datetime, timezone
from betbot.services import rejections
from betbot.services.rejections import reject
from betbot.utils.dates import ensure_utc

log = logging.getLogger(__name__)

OPEN = 'Open'
LOCKED = 'Locked'
COMPLETED = 'Completed'
ABORTED = 'Aborted'


def state_of(match) -> str:
    if match.is_aborted:
        return ABORTED
    if match.is_completed:
        return COMPLETED
    if match.is_started or match.bets_locked:
        return LOCKED
    return OPEN


def is_terminal(match) -> bool:
    return state_of(match) in (COMPLETED, ABORTED)


def can_accept_bets(match) -> bool:
    return state_of(match) == OPEN


def kickoff_passed(match, now=None) -> bool:
    now = now or datetime.now(timezone.utc)
    return ensure_utc(now) >= ensure_utc(match.match_date)


def check_not_terminal(match):
    """Returns a rejection tuple for terminal matches, None otherwise."""
    if match.is_completed:
        return reject(rejections.ALREADY_COMPLETED, f"Match {match.match_id} is already completed.")
    if match.is_aborted:
        return reject(rejections.ALREADY_ABORTED, f"Match {match.match_id} has been cancelled.")
    return None


def set_betting_lock(match, locked: bool, now=None):
    terminal = check_not_terminal(match)
    if terminal:
        return terminal
    match.bets_locked = bool(locked)
    match.updated_at = now or datetime.now(timezone.utc)
    log.info(f"Match {match.match_id}: betting {'locked' if locked else 'unlocked'} by admin. State now {state_of(match)}.")
    return True, match


def mark_started(match, now=None) -> bool:
    """
    Flags the match as started. Idempotent: returns True only when the flag
    actually changed so callers know whether to announce it.
    """
    if match.is_started:
        return False
    match.is_started = True
    match.updated_at = now or datetime.now(timezone.utc)
    log.info(f"Match {match.match_id}: kickoff passed, marked as started.")
    return True


def mark_completed(match, home_score, away_score, is_draw, now=None):
    terminal = check_not_terminal(match)
    if terminal:
        return terminal
    match.home_score = home_score
    match.away_score = away_score
    match.is_completed = True
    match.is_draw = bool(is_draw)
    match.updated_at = now or datetime.now(timezone.utc)
    return True, match


def mark_aborted(match, now=None):
    terminal = check_not_terminal(match)
    if terminal:
        return terminal
    match.is_aborted = True
    match.updated_at = now or datetime.now(timezone.utc)
    return True, match
