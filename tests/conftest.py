from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from betbot import create_app, db
from betbot.models import League, Match, User, Bet

NOW = datetime(2025, 3, 12, 18, 0, tzinfo=timezone.utc)
# Kickoff for matches that must still be open against the real clock
FAR_FUTURE = datetime(2099, 1, 1, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def league(session):
    league = League(
        name='Premier Picks',
        description='Weekly football predictions',
        channel='chan-1',
        start_date=NOW - timedelta(days=7),
        end_date=NOW + timedelta(days=90),
        is_completed=False,
    )
    session.add(league)
    session.commit()
    return league


@pytest.fixture
def make_match(session, league):
    def _make_match(home_odds='1.8', away_odds='2.1', draw_odds=None, home_handicap=None,
                    away_handicap=None, kickoff=None, **flags):
        match = Match(
            league_id=league.league_id,
            message_channel=league.channel,
            home_team='Arsenal',
            away_team='Chelsea',
            home_odds=Decimal(home_odds),
            away_odds=Decimal(away_odds),
            draw_odds=Decimal(draw_odds) if draw_odds else None,
            home_handicap=home_handicap,
            away_handicap=away_handicap,
            match_date=kickoff or FAR_FUTURE,
            **flags,
        )
        session.add(match)
        session.commit()
        return match
    return _make_match


@pytest.fixture
def make_user(session):
    def _make_user(user_id='u1', points=100, **stats):
        user = User(user_id=user_id, username=f'player-{user_id}', points=points, updated_at=NOW, **stats)
        session.add(user)
        session.commit()
        return user
    return _make_user


@pytest.fixture
def make_bet(session):
    """Inserts a pending bet directly, bypassing the ledger (no debit)."""
    def _make_bet(match, user_id, selection='home', amount=100):
        bet = Bet(match_id=match.match_id, user_id=user_id, selection=selection, amount=amount,
                  status='Pending', placement_time=NOW)
        session.add(bet)
        match.total_bets = (match.total_bets or 0) + 1
        session.commit()
        return bet
    return _make_bet


@pytest.fixture
def auth_headers(client):
    def _auth_headers(user_id='u1', username='player-u1', is_admin=False, is_moderator=False):
        response = client.post('/api/auth/token', json={
            'secret': 'testing-bot-secret',
            'user_id': user_id,
            'username': username,
            'is_admin': is_admin,
            'is_moderator': is_moderator,
        })
        assert response.status_code == 200
        return {'Authorization': f"Bearer {response.get_json()['access_token']}"}
    return _auth_headers
