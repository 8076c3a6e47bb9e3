# betbot/api/routes.py
"""
API Routes for the Points Betting Backend

REST endpoints called by the chat bot on behalf of users and administrators:
league and match administration, bet placement, settlement and cancellation,
user statistics, points management, the leaderboard and the live update
stream. Business rules live in the service layer; this module only parses
input, checks permissions and maps engine outcomes to HTTP responses.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import hmac
import re
import logging
from functools import wraps
from flask import request, current_app, Response, stream_with_context
from flask_restful import Resource, reqparse, inputs
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, get_jwt, verify_jwt_in_request
from sqlalchemy.exc import SQLAlchemyError
from betbot import db
from betbot.models import User, Bet, PointsHistory
from betbot.services import league_service, user_service
from betbot.services.betting_service import place_bet
from betbot.services.rejections import Rejection, FORBIDDEN
from betbot.sse_events import sse_event_stream_generator
from betbot.utils.dates import parse_date_input
from .settlement import settle_bets_for_match, cancel_match

log = logging.getLogger(__name__)

_WHOLE_NUMBER_RE = re.compile(r"-?\d+")

# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================
def _date_arg(value):
    return parse_date_input(value)

def _whole_number(value):
    # reqparse would otherwise int() a JSON 1.9 or true into 1
    if isinstance(value, bool):
        raise ValueError("Expected a whole number.")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _WHOLE_NUMBER_RE.fullmatch(value.strip()):
        return int(value)
    raise ValueError("Expected a whole number.")

def _rejected(rejection):
    return rejection.to_dict(), rejection.http_status

def _forbidden(message):
    return _rejected(Rejection(FORBIDDEN, message))

def handle_store_errors(func):
    """Database failures become a generic 500; details stay in the log."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as e:
            log.error(f"Database error in {func.__qualname__}: {e}", exc_info=True)
            db.session.rollback()
            return {'message': 'An internal error occurred. Please try again later.'}, 500
    return wrapper

def admin_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not get_jwt().get('is_admin'):
            return _forbidden('Administrator permission required.')
        return func(*args, **kwargs)
    return wrapper

def moderator_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        claims = get_jwt()
        if not (claims.get('is_moderator') or claims.get('is_admin')):
            return _forbidden('You do not have permission to use points management commands!')
        return func(*args, **kwargs)
    return wrapper

def _betting_rules():
    config = current_app.config
    mode = config['BETTING_MODE']
    return {
        'mode': mode,
        'default_stake': config['DEFAULT_STAKE'],
        'starting_points': config['EXTENDED_STARTING_POINTS'] if mode == 'extended' else config['SIMPLE_STARTING_POINTS'],
    }

class BetbotResource(Resource):
    method_decorators = [handle_store_errors]

# =============================================================================
# REQUEST PARSERS
# =============================================================================
_token_parser = reqparse.RequestParser()
_token_parser.add_argument('secret', type=str, required=True, help='Bot secret cannot be blank', location='json')
_token_parser.add_argument('user_id', type=str, required=True, help='User ID cannot be blank', location='json')
_token_parser.add_argument('username', type=str, required=True, help='Username cannot be blank', location='json')
_token_parser.add_argument('is_admin', type=inputs.boolean, default=False, location='json')
_token_parser.add_argument('is_moderator', type=inputs.boolean, default=False, location='json')

_league_parser = reqparse.RequestParser()
_league_parser.add_argument('name', type=str, required=True, help='Name cannot be blank', location='json')
_league_parser.add_argument('description', type=str, required=True, help='Description cannot be blank', location='json')
_league_parser.add_argument('channel', type=str, required=True, help='Channel cannot be blank', location='json')
_league_parser.add_argument('start_date', type=_date_arg, required=True, help='Start date: MM-DD-YYYY or ISO 8601', location='json')
_league_parser.add_argument('end_date', type=_date_arg, required=True, help='End date: MM-DD-YYYY or ISO 8601', location='json')

_league_update_parser = reqparse.RequestParser()
_league_update_parser.add_argument('name', type=str, location='json')
_league_update_parser.add_argument('description', type=str, location='json')
_league_update_parser.add_argument('channel', type=str, location='json')
_league_update_parser.add_argument('start_date', type=_date_arg, help='Start date: MM-DD-YYYY or ISO 8601', location='json')
_league_update_parser.add_argument('end_date', type=_date_arg, help='End date: MM-DD-YYYY or ISO 8601', location='json')
_league_update_parser.add_argument('is_completed', type=inputs.boolean, location='json')

_match_parser = reqparse.RequestParser()
_match_parser.add_argument('league_id', type=str, required=True, help='League ID cannot be blank', location='json')
_match_parser.add_argument('home_team', type=str, required=True, help='Home team cannot be blank', location='json')
_match_parser.add_argument('away_team', type=str, required=True, help='Away team cannot be blank', location='json')
_match_parser.add_argument('home_odds', type=str, required=True, help='Home odds cannot be blank', location='json')
_match_parser.add_argument('away_odds', type=str, required=True, help='Away odds cannot be blank', location='json')
_match_parser.add_argument('draw_odds', type=str, location='json')
_match_parser.add_argument('handicap', type=str, location='json')
_match_parser.add_argument('match_date', type=_date_arg, required=True, help='Match date: MM-DD-YYYY or ISO 8601', location='json')
_match_parser.add_argument('venue', type=str, location='json')

_match_update_parser = reqparse.RequestParser()
_match_update_parser.add_argument('home_odds', type=str, location='json')
_match_update_parser.add_argument('away_odds', type=str, location='json')
_match_update_parser.add_argument('betting_lock_status', type=inputs.boolean, location='json')
_match_update_parser.add_argument('message_id', type=str, location='json')

_result_parser = reqparse.RequestParser()
_result_parser.add_argument('home_score', type=_whole_number, required=True, help='Home score is required (integer)', location='json')
_result_parser.add_argument('away_score', type=_whole_number, required=True, help='Away score is required (integer)', location='json')

_bet_parser = reqparse.RequestParser()
_bet_parser.add_argument('match_id', type=str, required=True, help='Match ID cannot be blank', location='json')
_bet_parser.add_argument('selection', type=str, required=True, help='Selection cannot be blank (home, away or draw)', location='json')
_bet_parser.add_argument('amount', type=_whole_number, help='Stake amount must be a whole number', location='json')

_points_parser = reqparse.RequestParser()
_points_parser.add_argument('action', type=str, required=True, choices=('add', 'remove', 'set'), help='Action must be add, remove or set', location='json')
_points_parser.add_argument('amount', type=_whole_number, required=True, help='Amount is required (integer)', location='json')

# =============================================================================
# AUTHENTICATION RESOURCES
# =============================================================================

class BotToken(Resource):
    def post(self):
        """Exchanges the bot's shared secret for a token acting as one platform user."""
        data = _token_parser.parse_args()
        expected = current_app.config.get('BOT_SHARED_SECRET')
        if not expected or not hmac.compare_digest(data['secret'].encode('utf-8'), expected.encode('utf-8')):
            return {'message': 'Invalid credentials'}, 401

        access_token = create_access_token(
            identity=data['user_id'],
            additional_claims={
                'username': data['username'],
                'is_admin': bool(data['is_admin']),
                'is_moderator': bool(data['is_moderator']),
            },
        )
        return {'access_token': access_token}, 200

# =============================================================================
# LEAGUE RESOURCES
# =============================================================================

class LeagueListResource(BetbotResource):
    def get(self):
        include_completed = request.args.get('include_completed', 'true').lower() != 'false'
        leagues = league_service.list_leagues(db.session, include_completed=include_completed)
        return {'leagues': [league.to_dict() for league in leagues]}, 200

    @admin_required
    def post(self):
        data = _league_parser.parse_args()
        success, result = league_service.create_league(
            db.session,
            name=data['name'],
            description=data['description'],
            channel=data['channel'],
            start_date=data['start_date'],
            end_date=data['end_date'],
        )
        if not success:
            return _rejected(result)
        return {'message': 'League has been added successfully!', 'league': result.to_dict()}, 201

class LeagueResource(BetbotResource):
    def get(self, league_id):
        success, result = league_service.get_league(db.session, league_id)
        if not success:
            return _rejected(result)
        return {'league': result.to_dict()}, 200

    @admin_required
    def patch(self, league_id):
        data = _league_update_parser.parse_args()
        success, result = league_service.update_league(
            db.session, league_id,
            name=data['name'],
            description=data['description'],
            start_date=data['start_date'],
            end_date=data['end_date'],
            is_completed=data['is_completed'],
            channel=data['channel'],
        )
        if not success:
            return _rejected(result)
        return {'message': 'League has been updated successfully!', 'league': result.to_dict()}, 200

class LeagueEndResource(BetbotResource):
    @admin_required
    def post(self, league_id):
        success, result = league_service.end_league(db.session, league_id)
        if not success:
            return _rejected(result)
        return {'message': 'League has been marked as completed!', 'league': result.to_dict()}, 200

# =============================================================================
# MATCH RESOURCES
# =============================================================================

class MatchListResource(BetbotResource):
    def get(self):
        league_id = request.args.get('league_id')
        include_terminal = request.args.get('include_completed', 'false').lower() == 'true'
        matches = league_service.list_matches(db.session, league_id=league_id, include_terminal=include_terminal)
        return {'matches': [m.to_dict() for m in matches]}, 200

    @admin_required
    def post(self):
        data = _match_parser.parse_args()
        success, result = league_service.create_match(
            db.session,
            league_id=data['league_id'],
            home_team=data['home_team'],
            away_team=data['away_team'],
            home_odds=data['home_odds'],
            away_odds=data['away_odds'],
            match_date=data['match_date'],
            draw_odds=data['draw_odds'],
            handicap=data['handicap'],
            venue=data['venue'],
            max_active_matches=current_app.config['MAX_ACTIVE_MATCHES_PER_LEAGUE'],
        )
        if not success:
            return _rejected(result)
        return {'message': f'Match created successfully! ID: {result.match_id}', 'match': result.to_dict()}, 201

class MatchResource(BetbotResource):
    def get(self, match_id):
        """Get details for a specific match"""
        success, result = league_service.get_match(db.session, match_id)
        if not success:
            return _rejected(result)
        return {'match': result.to_dict()}, 200

    @admin_required
    def patch(self, match_id):
        data = _match_update_parser.parse_args()
        if data['message_id'] is not None:
            success, result = league_service.set_match_message(db.session, match_id, data['message_id'])
            if not success:
                return _rejected(result)
            if data['home_odds'] is None and data['away_odds'] is None and data['betting_lock_status'] is None:
                return {'message': 'Match updated successfully!', 'match': result.to_dict()}, 200

        success, result = league_service.update_match(
            db.session, match_id,
            home_odds=data['home_odds'],
            away_odds=data['away_odds'],
            bets_locked=data['betting_lock_status'],
        )
        if not success:
            return _rejected(result)
        return {'message': 'Match updated successfully!', 'match': result.to_dict()}, 200

class MatchSettleResource(BetbotResource):
    @admin_required
    def post(self, match_id):
        data = _result_parser.parse_args()
        success, result = settle_bets_for_match(db.session, match_id, data['home_score'], data['away_score'])
        if not success:
            return _rejected(result)
        return {
            'message': 'Match completed and winnings distributed!',
            'match_id': result.match_id,
            'result': result.result,
            'home_score': result.home_score,
            'away_score': result.away_score,
            'bets': [item._asdict() for item in result.items],
            'anomalies': result.anomalies,
        }, 200

class MatchCancelResource(BetbotResource):
    @admin_required
    def post(self, match_id):
        success, result = cancel_match(db.session, match_id)
        if not success:
            return _rejected(result)
        return {
            'message': 'Match cancelled and all bets refunded!',
            'match_id': result.match_id,
            'bets': [item._asdict() for item in result.items],
            'anomalies': result.anomalies,
        }, 200

# =============================================================================
# BETTING RESOURCES
# =============================================================================

class PlaceBet(BetbotResource):
    @jwt_required()
    def post(self):
        data = _bet_parser.parse_args()
        rules = _betting_rules()
        success, result = place_bet(
            db.session,
            match_id=data['match_id'],
            user_id=get_jwt_identity(),
            username=get_jwt().get('username'),
            selection=(data['selection'] or '').strip().lower(),
            stake=data['amount'],
            **rules,
        )
        if not success:
            return _rejected(result)
        return {'message': 'Bet placed successfully!', 'bet_details': result.to_dict()}, 201

class UserBetList(BetbotResource):
    @jwt_required()
    def get(self):
        user = db.session.get(User, get_jwt_identity())
        if not user:
            return {'message': 'User not found', 'reason': 'NotFound'}, 404

        status_filter = request.args.get('status')
        query = user.bets

        if status_filter:
            allowed_statuses = ['Pending', 'Won', 'Lost', 'Void', 'Settled']
            if status_filter == 'Settled':
                query = query.filter(Bet.status.in_(['Won', 'Lost', 'Void']))
            elif status_filter in allowed_statuses:
                query = query.filter(Bet.status == status_filter)

        bets = query.order_by(Bet.bet_id.desc()).all()
        return {'bets': [bet.to_dict() for bet in bets]}, 200

# =============================================================================
# USER RESOURCES
# =============================================================================

class UserStats(BetbotResource):
    @jwt_required()
    def get(self, user_id):
        success, result = user_service.get_user(db.session, user_id)
        if not success:
            return _rejected(result)
        return {'user': result.to_dict()}, 200

class UserPointsHistoryList(BetbotResource):
    @jwt_required()
    def get(self):
        user = db.session.get(User, get_jwt_identity())
        if not user:
            return {'message': 'User not found', 'reason': 'NotFound'}, 404

        history_items = user.points_history.order_by(PointsHistory.history_id.desc()).all()
        return {'points_history': [item.to_dict() for item in history_items]}, 200

class UserPoints(BetbotResource):
    @moderator_required
    def post(self, user_id):
        data = _points_parser.parse_args()
        success, result = user_service.adjust_points(db.session, user_id, data['action'], data['amount'])
        if not success:
            return _rejected(result)
        return {
            'message': f"Points {data['action']} applied for {result.username}.",
            'user_id': result.user_id,
            'points': result.points,
        }, 200

# =============================================================================
# LEADERBOARD RESOURCES
# =============================================================================

class Leaderboard(BetbotResource):
    def get(self):
        period = request.args.get('type', 'weekly')
        page = request.args.get('page', 1, type=int)
        success, result = user_service.get_leaderboard(
            db.session, period=period, page=page,
            per_page=current_app.config['LEADERBOARD_PAGE_SIZE'],
        )
        if not success:
            return _rejected(result)
        if not result['leaderboard']:
            result['message'] = 'No users found for this leaderboard period.'
        return result, 200

# =============================================================================
# ROUTE INITIALIZATION
# =============================================================================

def initialize_routes(app, api):
    """Initialize all API routes and endpoints"""

    # Authentication endpoints
    api.add_resource(BotToken, '/api/auth/token')

    # League endpoints
    api.add_resource(LeagueListResource, '/api/leagues')
    api.add_resource(LeagueResource, '/api/leagues/<string:league_id>')
    api.add_resource(LeagueEndResource, '/api/leagues/<string:league_id>/end')

    # Match endpoints
    api.add_resource(MatchListResource, '/api/matches')
    api.add_resource(MatchResource, '/api/matches/<string:match_id>')
    api.add_resource(MatchSettleResource, '/api/matches/<string:match_id>/settle')
    api.add_resource(MatchCancelResource, '/api/matches/<string:match_id>/cancel')

    # Betting endpoints
    api.add_resource(PlaceBet, '/api/bets/place')
    api.add_resource(UserBetList, '/api/bets')

    # User endpoints
    api.add_resource(UserStats, '/api/users/<string:user_id>/stats')
    api.add_resource(UserPoints, '/api/users/<string:user_id>/points')
    api.add_resource(UserPointsHistoryList, '/api/user/points-history')

    # Leaderboard endpoints
    api.add_resource(Leaderboard, '/api/leaderboard')

    # Server-Sent Events endpoint
    @app.route('/api/stream/updates')
    def sse_stream():
        return Response(stream_with_context(sse_event_stream_generator()), mimetype='text/event-stream')

    app.logger.info("---API AND SSE ROUTES INITIALISED---")
