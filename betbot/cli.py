# betbot/cli.py
import click
from betbot import db
from betbot.api.settlement import settle_bets_for_match, cancel_match


def register_commands(app):

    @app.cli.command("settle-match")
    @click.argument('match_id')
    @click.argument('home_score', type=int)
    @click.argument('away_score', type=int)
    def settle_match_command(match_id, home_score, away_score):
        """
        Records a final score for MATCH_ID and settles its pending bets.
        """
        print(f"--- Settling match {match_id} with score {home_score}-{away_score} ---")
        success, result = settle_bets_for_match(db.session, match_id, home_score, away_score)
        if not success:
            print(f"Settlement refused ({result.reason}): {result.message}")
            raise SystemExit(1)

        print(f"Result: {result.result}")
        for item in result.items:
            print(f"  Bet {item.bet_id} user {item.user_id}: {item.outcome} {item.amount}")
        for anomaly in result.anomalies:
            print(f"  WARNING: {anomaly}")
        print("--- Finished Settlement ---")

    @app.cli.command("cancel-match")
    @click.argument('match_id')
    def cancel_match_command(match_id):
        """
        Cancels MATCH_ID and refunds every pending stake.
        """
        print(f"--- Cancelling match {match_id} ---")
        success, result = cancel_match(db.session, match_id)
        if not success:
            print(f"Cancellation refused ({result.reason}): {result.message}")
            raise SystemExit(1)

        for item in result.items:
            print(f"  Bet {item.bet_id} user {item.user_id}: {item.outcome} {item.amount}")
        for anomaly in result.anomalies:
            print(f"  WARNING: {anomaly}")
        print("--- Finished Cancellation ---")
