"""
Database Models for the Points Betting Backend

This file defines the SQLAlchemy ORM models behind the betting game:

- League: A competition grouping matches and owning an announcement channel
- Match: A fixture with odds, an optional handicap line, lifecycle flags and results
- Bet: A stake placed by a user on one side of a match (child of Match)
- User: A platform user with a points balance and running betting statistics
- PointsHistory: Audit trail of every points balance change

Match and League ids are ULIDs generated by the application; User ids are the
chat platform's user ids.
"""

from datetime import datetime, timezone
from ulid import ULID
from betbot import db
from betbot.utils.dates import ensure_utc


def _utcnow():
    return datetime.now(timezone.utc)


def new_ulid():
    return str(ULID())


class League(db.Model):
    __tablename__ = 'leagues'
    league_id = db.Column(db.String(26), primary_key=True, default=new_ulid)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(1000), nullable=False, default='')
    channel = db.Column(db.String(64), nullable=False, index=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    matches = db.relationship('Match', backref='league', lazy='dynamic', order_by='Match.match_id')

    def __repr__(self):
        return f"<League {self.name} ({self.league_id})>"

    def to_dict(self):
        return {
            'league_id': self.league_id,
            'name': self.name,
            'description': self.description,
            'channel': self.channel,
            'start_date': ensure_utc(self.start_date).isoformat() if self.start_date else None,
            'end_date': ensure_utc(self.end_date).isoformat() if self.end_date else None,
            'match_ids': [m.match_id for m in self.matches],
            'is_completed': self.is_completed,
            'updated_at': ensure_utc(self.updated_at).isoformat() if self.updated_at else None,
        }


class Match(db.Model):
    __tablename__ = 'matches'
    match_id = db.Column(db.String(26), primary_key=True, default=new_ulid)
    league_id = db.Column(db.String(26), db.ForeignKey('leagues.league_id'), nullable=False, index=True)
    message_channel = db.Column(db.String(64), nullable=True)
    message_id = db.Column(db.String(64), nullable=True)

    home_team = db.Column(db.String(100), nullable=False)
    away_team = db.Column(db.String(100), nullable=False)
    home_score = db.Column(db.Integer, nullable=True)
    away_score = db.Column(db.Integer, nullable=True)

    # At most one of the two is set: '+' lines belong to home, '-' lines to away
    home_handicap = db.Column(db.String(8), nullable=True)
    away_handicap = db.Column(db.String(8), nullable=True)

    home_odds = db.Column(db.Numeric(6, 3), nullable=True)
    away_odds = db.Column(db.Numeric(6, 3), nullable=True)
    draw_odds = db.Column(db.Numeric(6, 3), nullable=True) # Null for a market without draw

    total_bets = db.Column(db.Integer, nullable=False, default=0)
    bets_locked = db.Column(db.Boolean, nullable=False, default=False)
    is_started = db.Column(db.Boolean, nullable=False, default=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_aborted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_draw = db.Column(db.Boolean, nullable=False, default=False)

    match_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True) # Kickoff
    venue = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    bets = db.relationship('Bet', backref='match', lazy='dynamic', order_by='Bet.bet_id')

    def __repr__(self):
        return f"<Match {self.home_team} vs {self.away_team} @ {self.match_date}>"

    @property
    def handicap(self):
        return self.home_handicap or self.away_handicap

    @property
    def offers_draw(self):
        return bool(self.draw_odds)

    def to_dict(self):
        from betbot.services.lifecycle import state_of
        return {
            'match_id': self.match_id,
            'league_id': self.league_id,
            'message_channel': self.message_channel,
            'message_id': self.message_id,
            'home_team': self.home_team,
            'away_team': self.away_team,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'home_handicap': self.home_handicap,
            'away_handicap': self.away_handicap,
            'home_odds': float(self.home_odds) if self.home_odds is not None else None,
            'away_odds': float(self.away_odds) if self.away_odds is not None else None,
            'draw_odds': float(self.draw_odds) if self.draw_odds is not None else None,
            'total_bets': self.total_bets,
            'bets_locked': self.bets_locked,
            'is_started': self.is_started,
            'is_completed': self.is_completed,
            'is_aborted': self.is_aborted,
            'is_draw': self.is_draw,
            'state': state_of(self),
            'match_date': ensure_utc(self.match_date).isoformat() if self.match_date else None,
            'venue': self.venue,
            'updated_at': ensure_utc(self.updated_at).isoformat() if self.updated_at else None,
        }


class Bet(db.Model):
    __tablename__ = 'bets'
    bet_id = db.Column(db.Integer, primary_key=True) # Autoincrement; defines insertion order
    match_id = db.Column(db.String(26), db.ForeignKey('matches.match_id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), db.ForeignKey('users.user_id'), nullable=False, index=True)
    selection = db.Column(db.String(10), nullable=False) # home, away, draw
    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='Pending', index=True) # Pending, Won, Lost, Void
    payout = db.Column(db.Integer, nullable=False, default=0)
    placement_time = db.Column(db.DateTime(timezone=True), default=_utcnow)
    settlement_time = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Bet {self.bet_id} User:{self.user_id} Match:{self.match_id} Amt:{self.amount} On:{self.selection} Status:{self.status}>"

    @property
    def is_settled(self):
        return self.status != 'Pending'

    def to_dict(self):
        return {
            'bet_id': self.bet_id,
            'match_id': self.match_id,
            'user_id': self.user_id,
            'home_team': self.match.home_team,
            'away_team': self.match.away_team,
            'selection': self.selection,
            'amount': self.amount,
            'status': self.status,
            'payout': self.payout,
            'placement_time': ensure_utc(self.placement_time).isoformat() if self.placement_time else None,
            'settlement_time': ensure_utc(self.settlement_time).isoformat() if self.settlement_time else None,
        }


class User(db.Model):
    __tablename__ = 'users'
    user_id = db.Column(db.String(64), primary_key=True) # Platform user id
    username = db.Column(db.String(100), nullable=False)
    points = db.Column(db.Integer, nullable=False, default=100)

    bets_placed = db.Column(db.Integer, nullable=False, default=0)
    bets_withdrawn = db.Column(db.Integer, nullable=False, default=0)
    bets_correct = db.Column(db.Integer, nullable=False, default=0)
    bets_incorrect = db.Column(db.Integer, nullable=False, default=0)

    profits = db.Column(db.Integer, nullable=False, default=0)
    loss = db.Column(db.Integer, nullable=False, default=0)

    win_streak_current = db.Column(db.Integer, nullable=False, default=0)
    win_streak_max = db.Column(db.Integer, nullable=False, default=0)
    loss_streak_current = db.Column(db.Integer, nullable=False, default=0)
    loss_streak_max = db.Column(db.Integer, nullable=False, default=0)

    stake_investment = db.Column(db.Integer, nullable=False, default=0)
    investment_1x2 = db.Column(db.Integer, nullable=False, default=0)
    investment_asian_handicap = db.Column(db.Integer, nullable=False, default=0)
    roi = db.Column(db.Float, nullable=False, default=0.0)
    roi_1x2 = db.Column(db.Float, nullable=False, default=0.0)
    roi_asian_handicap = db.Column(db.Float, nullable=False, default=0.0)

    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    bets = db.relationship('Bet', backref='user', lazy='dynamic')
    points_history = db.relationship('PointsHistory', backref='user', lazy='dynamic')

    def __repr__(self):
        return f"<User {self.username} ({self.user_id})>"

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'username': self.username,
            'points': self.points,
            'bets_placed': self.bets_placed,
            'bets_withdrawn': self.bets_withdrawn,
            'bets_correct': self.bets_correct,
            'bets_incorrect': self.bets_incorrect,
            'profits': self.profits,
            'loss': self.loss,
            'win_streak_current': self.win_streak_current,
            'win_streak_max': self.win_streak_max,
            'loss_streak_current': self.loss_streak_current,
            'loss_streak_max': self.loss_streak_max,
            'stake_investment': self.stake_investment,
            'investment_1x2': self.investment_1x2,
            'investment_asian_handicap': self.investment_asian_handicap,
            'roi': self.roi,
            'roi_1x2': self.roi_1x2,
            'roi_asian_handicap': self.roi_asian_handicap,
            'updated_at': ensure_utc(self.updated_at).isoformat() if self.updated_at else None,
        }


class PointsHistory(db.Model):
    __tablename__ = 'points_history'
    history_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), db.ForeignKey('users.user_id'), nullable=False, index=True)
    change_type = db.Column(db.String(50), nullable=False, index=True) # 'Initial Grant', 'Bet Placement', 'Bet Win', 'Bet Loss', 'Bet Refund', 'Admin Adjustment'
    related_bet_id = db.Column(db.Integer, db.ForeignKey('bets.bet_id'), nullable=True, index=True)
    match_id = db.Column(db.String(26), nullable=True)
    amount_change = db.Column(db.Integer, nullable=False) # Positive or negative
    previous_balance = db.Column(db.Integer, nullable=False)
    new_balance = db.Column(db.Integer, nullable=False)
    timestamp = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self):
        return f"<PointsHistory {self.history_id} User:{self.user_id} Type:{self.change_type} Amt:{self.amount_change}>"

    def to_dict(self):
        return {
            'history_id': self.history_id,
            'user_id': self.user_id,
            'change_type': self.change_type,
            'related_bet_id': self.related_bet_id,
            'match_id': self.match_id,
            'amount_change': self.amount_change,
            'previous_balance': self.previous_balance,
            'new_balance': self.new_balance,
            'timestamp': ensure_utc(self.timestamp).isoformat() if self.timestamp else None,
        }
