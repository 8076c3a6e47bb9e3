# betbot/services/outcome.py
"""
Odds & Outcome Calculator

Maps a final score, optionally adjusted by a handicap line, onto the result
category a bet is judged against: 'home', 'away' or 'draw'.
"""

from decimal import Decimal, InvalidOperation, ROUND_FLOOR

HOME = 'home'
AWAY = 'away'
DRAW = 'draw'
SELECTIONS = (HOME, AWAY, DRAW)

MARKET_1X2 = '1x2'
MARKET_ASIAN_HANDICAP = 'asian_handicap'

# Quarter-point lines from 0 to 4 in both directions. '+' lines are recorded
# against the home side, '-' lines against the away side.
HANDICAP_LINES = tuple(
    f"{sign}{format((Decimal(step) / 4).normalize(), 'f')}"
    for sign in ('+', '-')
    for step in range(0, 17)
)


def parse_handicap_line(raw) -> Decimal:
    """Converts a stored handicap string such as '+0.25' or '-1' to a Decimal."""
    if raw is None:
        raise ValueError("Handicap line is missing.")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValueError(f"Malformed handicap line '{raw}'.")
    if not value.is_finite():
        raise ValueError(f"Malformed handicap line '{raw}'.")
    return value


def resolve(home_score, away_score, handicap_line=None) -> str:
    """
    Result category for a final score.

    The line is added to the home score whichever side it was recorded for;
    its sign already says who is favoured. Equal (adjusted) scores are a draw.
    """
    adjusted_home = Decimal(home_score)
    if handicap_line is not None:
        adjusted_home += parse_handicap_line(handicap_line)
    away = Decimal(away_score)

    if adjusted_home > away:
        return HOME
    if adjusted_home < away:
        return AWAY
    return DRAW


def market_type(match) -> str:
    return MARKET_ASIAN_HANDICAP if match.handicap else MARKET_1X2


def odds_for_selection(match, selection) -> Decimal:
    # Draw selections are priced off the away odds, as settled historically.
    odds = match.home_odds if selection == HOME else match.away_odds
    if not odds:
        return Decimal('1')
    return Decimal(str(odds))


def calculate_winnings(stake: int, odds) -> int:
    """floor(stake * odds), computed in Decimal so 100 * 1.15 pays 115, not 114."""
    return int((Decimal(stake) * Decimal(str(odds))).to_integral_value(rounding=ROUND_FLOOR))
