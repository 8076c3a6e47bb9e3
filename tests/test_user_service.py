from datetime import datetime, timedelta, timezone

from betbot.models import User, PointsHistory
from betbot.services import rejections, user_service
from conftest import NOW


def test_get_or_create_user_grants_starting_points(session):
    user, created = user_service.get_or_create_user(session, 'u1', 'alice', 250, now=NOW)
    session.commit()
    assert created
    assert user.points == 250

    again, created = user_service.get_or_create_user(session, 'u1', 'alice-renamed', 250, now=NOW)
    assert not created
    assert again.username == 'alice-renamed'
    grants = session.query(PointsHistory).filter_by(user_id='u1', change_type='Initial Grant').all()
    assert [(g.previous_balance, g.new_balance) for g in grants] == [(0, 250)]


def test_adjust_points(session, make_user):
    make_user('u1', points=100)

    assert user_service.adjust_points(session, 'u1', 'add', 50, now=NOW)[1].points == 150
    assert user_service.adjust_points(session, 'u1', 'remove', 200, now=NOW)[1].points == -50
    assert user_service.adjust_points(session, 'u1', 'set', 10, now=NOW)[1].points == 10

    changes = session.query(PointsHistory).filter_by(user_id='u1').order_by(PointsHistory.history_id).all()
    assert [c.amount_change for c in changes] == [50, -200, 60]
    assert all(c.change_type == 'Admin Adjustment' for c in changes)


def test_adjust_points_validation(session, make_user):
    make_user('u1', points=100)
    assert user_service.adjust_points(session, 'u1', 'double', 5)[1].reason == rejections.INVALID_INPUT
    assert user_service.adjust_points(session, 'u1', 'add', 0)[1].reason == rejections.INVALID_INPUT
    assert user_service.adjust_points(session, 'u1', 'set', -1)[1].reason == rejections.INVALID_INPUT
    assert user_service.adjust_points(session, 'nobody', 'add', 5)[1].reason == rejections.NOT_FOUND
    assert session.get(User, 'u1').points == 100


def test_leaderboard_period_starts():
    wednesday = datetime(2025, 3, 12, 18, 0, tzinfo=timezone.utc)
    assert user_service.leaderboard_start_date('weekly', wednesday) == datetime(2025, 3, 9, tzinfo=timezone.utc)
    sunday = datetime(2025, 3, 9, 8, 0, tzinfo=timezone.utc)
    assert user_service.leaderboard_start_date('weekly', sunday) == datetime(2025, 3, 9, tzinfo=timezone.utc)
    assert user_service.leaderboard_start_date('monthly', wednesday) == datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert user_service.leaderboard_start_date('alltime', wednesday) is None


def test_leaderboard_ranks_by_points(session, make_user):
    make_user('u1', points=120)
    make_user('u2', points=300)
    make_user('u3', points=50)
    stale = make_user('u4', points=999)
    stale.updated_at = NOW - timedelta(days=60)
    session.commit()

    success, weekly = user_service.get_leaderboard(session, 'weekly', now=NOW)
    assert success
    assert [row['user_id'] for row in weekly['leaderboard']] == ['u2', 'u1', 'u3']
    assert weekly['leaderboard'][0]['rank'] == 1
    assert weekly['total_users'] == 3

    success, alltime = user_service.get_leaderboard(session, 'alltime', now=NOW)
    assert alltime['leaderboard'][0]['user_id'] == 'u4'


def test_leaderboard_paging(session, make_user):
    for i in range(5):
        make_user(f'u{i}', points=100 + i)

    success, page = user_service.get_leaderboard(session, 'alltime', page=2, per_page=2, now=NOW)
    assert success
    assert page['total_pages'] == 3
    assert [row['rank'] for row in page['leaderboard']] == [3, 4]

    success, rejection = user_service.get_leaderboard(session, 'alltime', page=4, per_page=2, now=NOW)
    assert rejection.reason == rejections.INVALID_INPUT
    success, rejection = user_service.get_leaderboard(session, 'yearly', now=NOW)
    assert rejection.reason == rejections.INVALID_INPUT
