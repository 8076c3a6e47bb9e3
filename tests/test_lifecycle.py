from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from betbot.services import lifecycle
from betbot.services.rejections import ALREADY_COMPLETED, ALREADY_ABORTED

NOW = datetime(2025, 3, 12, 18, 0, tzinfo=timezone.utc)


def _match(**flags):
    values = dict(match_id='M1', is_started=False, bets_locked=False, is_completed=False,
                  is_aborted=False, match_date=NOW + timedelta(hours=2), updated_at=None)
    values.update(flags)
    return SimpleNamespace(**values)


def test_states():
    assert lifecycle.state_of(_match()) == lifecycle.OPEN
    assert lifecycle.state_of(_match(bets_locked=True)) == lifecycle.LOCKED
    assert lifecycle.state_of(_match(is_started=True)) == lifecycle.LOCKED
    assert lifecycle.state_of(_match(is_completed=True, is_started=True)) == lifecycle.COMPLETED
    assert lifecycle.state_of(_match(is_aborted=True)) == lifecycle.ABORTED


def test_only_open_matches_accept_bets():
    assert lifecycle.can_accept_bets(_match())
    assert not lifecycle.can_accept_bets(_match(bets_locked=True))
    assert not lifecycle.can_accept_bets(_match(is_aborted=True))


def test_admin_lock_can_be_lifted():
    match = _match()
    lifecycle.set_betting_lock(match, True, now=NOW)
    assert lifecycle.state_of(match) == lifecycle.LOCKED
    lifecycle.set_betting_lock(match, False, now=NOW)
    assert lifecycle.state_of(match) == lifecycle.OPEN


def test_terminal_states_do_not_change():
    completed = _match(is_completed=True)
    success, rejection = lifecycle.set_betting_lock(completed, False, now=NOW)
    assert not success
    assert rejection.reason == ALREADY_COMPLETED

    aborted = _match(is_aborted=True)
    success, rejection = lifecycle.mark_completed(aborted, 1, 0, False, now=NOW)
    assert not success
    assert rejection.reason == ALREADY_ABORTED
    assert not aborted.is_completed


def test_mark_started_is_idempotent():
    match = _match()
    assert lifecycle.mark_started(match, now=NOW) is True
    assert lifecycle.mark_started(match, now=NOW) is False
    assert match.is_started


def test_kickoff_passed_handles_naive_stored_dates():
    match = _match(match_date=datetime(2025, 3, 12, 17, 59))
    assert lifecycle.kickoff_passed(match, NOW)
    match = _match(match_date=datetime(2025, 3, 12, 18, 1))
    assert not lifecycle.kickoff_passed(match, NOW)
    # The cutoff itself is inclusive
    assert lifecycle.kickoff_passed(_match(match_date=NOW), NOW)


def test_mark_completed_records_result():
    match = _match(home_score=None, away_score=None, is_draw=False)
    success, _ = lifecycle.mark_completed(match, 2, 2, True, now=NOW)
    assert success
    assert match.is_completed and match.is_draw
    assert (match.home_score, match.away_score) == (2, 2)
    assert lifecycle.is_terminal(match)
