from datetime import timedelta

from betbot.models import User, Match
from conftest import NOW


def test_token_requires_the_bot_secret(client):
    response = client.post('/api/auth/token', json={'secret': 'wrong', 'user_id': 'u1', 'username': 'alice'})
    assert response.status_code == 401


def test_admin_endpoints_require_admin_claim(client, auth_headers):
    response = client.post('/api/leagues', headers=auth_headers(), json={
        'name': 'Cup', 'description': 'x', 'channel': 'c', 'start_date': '03-01-2025', 'end_date': '06-01-2025',
    })
    assert response.status_code == 403
    assert response.get_json()['reason'] == 'Forbidden'


def test_missing_token_is_unauthorised(client):
    response = client.post('/api/bets/place', json={'match_id': 'x', 'selection': 'home'})
    assert response.status_code == 401


def test_league_and_match_administration(client, auth_headers):
    admin = auth_headers('admin', 'boss', is_admin=True)

    response = client.post('/api/leagues', headers=admin, json={
        'name': 'Cup', 'description': 'Knockouts', 'channel': 'chan-7',
        'start_date': '03-01-2025', 'end_date': '2025-06-01T00:00:00Z',
    })
    assert response.status_code == 201
    league_id = response.get_json()['league']['league_id']

    response = client.post('/api/leagues', headers=admin, json={
        'name': 'Other', 'description': 'x', 'channel': 'chan-7',
        'start_date': '03-01-2025', 'end_date': '06-01-2025',
    })
    assert response.status_code == 409
    assert response.get_json()['reason'] == 'ChannelInUse'

    response = client.post('/api/matches', headers=admin, json={
        'league_id': league_id, 'home_team': 'Arsenal', 'away_team': 'Chelsea',
        'home_odds': 1.8, 'away_odds': 2.1, 'draw_odds': 0, 'handicap': '+0.25',
        'match_date': '12-31-2099 15:00',
    })
    assert response.status_code == 201
    match = response.get_json()['match']
    assert match['state'] == 'Open'
    assert match['home_handicap'] == '+0.25'
    assert match['draw_odds'] is None

    response = client.patch(f"/api/matches/{match['match_id']}", headers=admin,
                            json={'betting_lock_status': True, 'message_id': '555'})
    assert response.status_code == 200
    body = response.get_json()['match']
    assert body['state'] == 'Locked'
    assert body['message_id'] == '555'

    response = client.get(f'/api/matches?league_id={league_id}')
    assert [m['match_id'] for m in response.get_json()['matches']] == [match['match_id']]

    response = client.post(f'/api/leagues/{league_id}/end', headers=admin)
    assert response.status_code == 200
    assert response.get_json()['league']['is_completed'] is True


def test_bad_date_is_a_client_error(client, auth_headers):
    admin = auth_headers('admin', 'boss', is_admin=True)
    response = client.post('/api/leagues', headers=admin, json={
        'name': 'Cup', 'description': 'x', 'channel': 'c', 'start_date': 'soon', 'end_date': '06-01-2025',
    })
    assert response.status_code == 400


def test_place_and_settle_through_the_api(client, session, auth_headers, make_match):
    match = make_match(home_odds='1.8')
    player = auth_headers('u1', 'alice')

    response = client.post('/api/bets/place', headers=player, json={'match_id': match.match_id, 'selection': 'Home'})
    assert response.status_code == 201
    assert response.get_json()['bet_details']['amount'] == 100

    response = client.post('/api/bets/place', headers=player, json={'match_id': match.match_id, 'selection': 'home'})
    assert response.status_code == 409
    assert response.get_json()['reason'] == 'AlreadyBet'

    admin = auth_headers('admin', 'boss', is_admin=True)
    response = client.post(f'/api/matches/{match.match_id}/settle', headers=admin, json={'home_score': 2, 'away_score': 0})
    assert response.status_code == 200
    body = response.get_json()
    assert body['result'] == 'home'
    assert body['bets'][0]['outcome'] == 'won'
    assert body['bets'][0]['amount'] == 180

    response = client.post(f'/api/matches/{match.match_id}/settle', headers=admin, json={'home_score': 2, 'away_score': 0})
    assert response.status_code == 409
    assert response.get_json()['reason'] == 'AlreadyCompleted'

    response = client.get('/api/users/u1/stats', headers=player)
    assert response.get_json()['user']['points'] == 180

    response = client.get('/api/bets?status=Settled', headers=player)
    assert [b['status'] for b in response.get_json()['bets']] == ['Won']

    response = client.get('/api/user/points-history', headers=player)
    assert [h['change_type'] for h in response.get_json()['points_history']] == ['Bet Win', 'Bet Placement', 'Initial Grant']


def test_cancel_through_the_api(client, session, auth_headers, make_match, make_user):
    make_user('u1', points=100)
    match = make_match()
    client.post('/api/bets/place', headers=auth_headers('u1', 'alice'), json={'match_id': match.match_id, 'selection': 'away'})
    assert session.get(User, 'u1').points == 0

    response = client.post(f'/api/matches/{match.match_id}/cancel', headers=auth_headers('admin', 'boss', is_admin=True))

    assert response.status_code == 200
    assert response.get_json()['bets'][0]['outcome'] == 'refunded'
    session.expire_all()
    assert session.get(User, 'u1').points == 100
    assert session.get(Match, match.match_id).is_aborted


def test_betting_after_kickoff_is_closed(client, auth_headers, make_match):
    match = make_match(kickoff=NOW - timedelta(hours=1))
    response = client.post('/api/bets/place', headers=auth_headers(), json={'match_id': match.match_id, 'selection': 'home'})
    assert response.status_code == 409
    assert response.get_json()['reason'] == 'Closed'


def test_points_management_needs_moderator(client, auth_headers, make_user):
    make_user('u2', points=100)

    response = client.post('/api/users/u2/points', headers=auth_headers(), json={'action': 'add', 'amount': 5})
    assert response.status_code == 403

    moderator = auth_headers('mod', 'mod', is_moderator=True)
    response = client.post('/api/users/u2/points', headers=moderator, json={'action': 'remove', 'amount': 30})
    assert response.status_code == 200
    assert response.get_json()['points'] == 70

    response = client.post('/api/users/u2/points', headers=moderator, json={'action': 'halve', 'amount': 30})
    assert response.status_code == 400


def test_leaderboard(client, make_user):
    make_user('u1', points=10)
    make_user('u2', points=20)

    response = client.get('/api/leaderboard?type=alltime')
    assert response.status_code == 200
    assert [row['user_id'] for row in response.get_json()['leaderboard']] == ['u2', 'u1']

    response = client.get('/api/leaderboard?type=alltime&page=9')
    assert response.status_code == 400


def test_non_ascii_secret_is_unauthorised(client):
    response = client.post('/api/auth/token', json={'secret': 'pässwörd', 'user_id': 'u1', 'username': 'alice'})
    assert response.status_code == 401


def test_fractional_scores_are_rejected(client, session, auth_headers, make_match):
    match = make_match()
    admin = auth_headers('admin', 'boss', is_admin=True)

    for scores in ({'home_score': 1.9, 'away_score': 1}, {'home_score': 2, 'away_score': True}):
        response = client.post(f'/api/matches/{match.match_id}/settle', headers=admin, json=scores)
        assert response.status_code == 400

    assert not session.get(Match, match.match_id).is_completed

    response = client.post(f'/api/matches/{match.match_id}/settle', headers=admin, json={'home_score': '2', 'away_score': 0})
    assert response.status_code == 200
    assert response.get_json()['result'] == 'home'


def test_fractional_amounts_are_rejected(client, auth_headers, make_match, make_user):
    make_user('u2', points=100)
    match = make_match()

    for amount in (150.9, True, '12abc'):
        response = client.post('/api/bets/place', headers=auth_headers(),
                               json={'match_id': match.match_id, 'selection': 'home', 'amount': amount})
        assert response.status_code == 400

    moderator = auth_headers('mod', 'mod', is_moderator=True)
    response = client.post('/api/users/u2/points', headers=moderator, json={'action': 'add', 'amount': 2.5})
    assert response.status_code == 400
