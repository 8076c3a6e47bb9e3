# betbot/services/user_service.py
"""
User accounts, points administration and the leaderboard.

Users are created lazily the first time they bet and are never deleted. Every
balance change, whatever its source, leaves a PointsHistory row behind.
"""

import logging
import math
from datetime import datetime, timezone, timedelta
from sqlalchemy.exc import SQLAlchemyError
from betbot.models import User, PointsHistory
from betbot.services import rejections
from betbot.services.rejections import reject

log = logging.getLogger(__name__)

LEADERBOARD_PERIODS = ('weekly', 'monthly', 'alltime')
POINTS_ACTIONS = ('add', 'remove', 'set')


def log_points_change(session, user, change_type, amount_change, previous_balance,
                      related_bet=None, match_id=None, timestamp=None):
    entry = PointsHistory(
        user_id=user.user_id,
        change_type=change_type,
        related_bet_id=related_bet.bet_id if related_bet is not None else None,
        match_id=match_id,
        amount_change=amount_change,
        previous_balance=previous_balance,
        new_balance=previous_balance + amount_change,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    session.add(entry)
    return entry


def get_or_create_user(session, user_id, username, starting_points, now=None):
    """
    Returns (user, created). A new user starts with `starting_points` and an
    'Initial Grant' history row. The caller owns the commit.
    """
    user = session.get(User, user_id)
    if user:
        if username and user.username != username:
            user.username = username
        return user, False

    now = now or datetime.now(timezone.utc)
    user = User(
        user_id=user_id,
        username=username or user_id,
        points=starting_points,
        updated_at=now,
    )
    session.add(user)
    session.flush()
    log_points_change(session, user, 'Initial Grant', starting_points, 0, timestamp=now)
    log.info(f"Created user {user.username} ({user.user_id}) with {starting_points} starting points.")
    return user, True


def get_user(session, user_id):
    user = session.get(User, user_id)
    if not user:
        return reject(rejections.NOT_FOUND, f"User {user_id} not found.")
    return True, user


def adjust_points(session, user_id, action, amount, now=None):
    """
    Moderator points management: 'add' and 'remove' move the balance by
    `amount`, 'set' replaces it. Removal is not floored at zero.
    """
    if action not in POINTS_ACTIONS:
        return reject(rejections.INVALID_INPUT, f"Unknown points action '{action}'. Use add, remove or set.")
    if not isinstance(amount, int) or isinstance(amount, bool):
        return reject(rejections.INVALID_INPUT, "Amount must be an integer.")
    if action in ('add', 'remove') and amount < 1:
        return reject(rejections.INVALID_INPUT, "Amount must be at least 1.")
    if action == 'set' and amount < 0:
        return reject(rejections.INVALID_INPUT, "Amount must not be negative.")

    now = now or datetime.now(timezone.utc)
    try:
        user = session.get(User, user_id)
        if not user:
            return reject(rejections.NOT_FOUND, f"User {user_id} not found.")

        previous_balance = user.points
        if action == 'add':
            change = amount
        elif action == 'remove':
            change = -amount
        else:
            change = amount - previous_balance

        user.points = previous_balance + change
        user.updated_at = now
        log_points_change(session, user, 'Admin Adjustment', change, previous_balance, timestamp=now)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.error(f"Database error adjusting points for user {user_id}", exc_info=True)
        raise

    log.info(f"Points {action} for user {user.user_id}: {previous_balance} -> {user.points}")
    return True, user


def leaderboard_start_date(period, now=None):
    """
    Start of the leaderboard window: the most recent Sunday for 'weekly',
    the first of the month for 'monthly', None (no filter) for 'alltime'.
    """
    now = now or datetime.now(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'weekly':
        days_since_sunday = (today.weekday() + 1) % 7
        return today - timedelta(days=days_since_sunday)
    if period == 'monthly':
        return today.replace(day=1)
    return None


def get_leaderboard(session, period='weekly', page=1, per_page=20, now=None):
    """
    Users ranked by points, optionally restricted to those active since the
    period start. Returns (True, dict) or a rejection for an unknown period or
    an out-of-range page.
    """
    if period not in LEADERBOARD_PERIODS:
        return reject(rejections.INVALID_INPUT, f"Unknown leaderboard type '{period}'.")
    if page < 1:
        return reject(rejections.INVALID_INPUT, "Page must be at least 1.")

    query = session.query(User)
    start_date = leaderboard_start_date(period, now)
    if start_date is not None:
        query = query.filter(User.updated_at >= start_date)

    total_users = query.count()
    total_pages = math.ceil(total_users / per_page)
    if page > total_pages and total_pages > 0:
        return reject(rejections.INVALID_INPUT, f"Invalid page number. Total pages available: {total_pages}")

    skip = (page - 1) * per_page
    users = query.order_by(User.points.desc(), User.username.asc()) \
                 .offset(skip).limit(per_page).all()

    return True, {
        'type': period,
        'leaderboard': [{
            'rank': skip + i + 1,
            'user_id': user.user_id,
            'username': user.username,
            'points': user.points,
        } for i, user in enumerate(users)],
        'total_users': total_users,
        'current_page': page,
        'total_pages': total_pages,
        'per_page': per_page,
    }
