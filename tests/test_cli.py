from betbot.models import User, Match


def test_settle_match_command(app, session, make_match, make_user, make_bet):
    make_user('u1', points=0)
    match = make_match(home_odds='2.0')
    make_bet(match, 'u1', 'home')
    match_id = match.match_id

    result = app.test_cli_runner().invoke(args=['settle-match', match_id, '3', '1'])

    assert result.exit_code == 0
    assert 'Result: home' in result.output
    session.expire_all()
    assert session.get(User, 'u1').points == 200
    assert session.get(Match, match_id).is_completed


def test_cancel_match_command_refuses_terminal_match(app, session, make_match):
    match = make_match(is_completed=True)

    result = app.test_cli_runner().invoke(args=['cancel-match', match.match_id])

    assert result.exit_code == 1
    assert 'AlreadyCompleted' in result.output
