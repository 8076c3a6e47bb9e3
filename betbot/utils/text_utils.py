# betbot/utils/text_utils.py
import logging
import re
from decimal import Decimal

log = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r'\s+')
_LINE_RE = re.compile(r'([+-]?)(\d+(?:\.\d+)?)')


def normalize_team_name(name: str) -> str:
    """
    Collapses runs of whitespace and strips the ends so the same team typed twice
    by an admin is stored identically. Casing is left as entered.
    """
    if not name or not isinstance(name, str):
        log.warning(f"Invalid team name received for normalization: {name}")
        raise ValueError("Team name must be a non-empty string.")

    cleaned = _WHITESPACE_RE.sub(' ', name).strip()
    if not cleaned:
        raise ValueError("Team name must be a non-empty string.")
    return cleaned


def normalize_handicap(raw: str) -> str:
    """
    Canonicalises an admin-typed handicap line: '0.5' -> '+0.5', ' -1.00 ' -> '-1'.
    Lines without an explicit sign are treated as home lines.
    Raises ValueError for anything that is not a signed decimal.
    """
    if raw is None:
        raise ValueError("Handicap must be a string.")
    text = str(raw).replace(' ', '')
    match = _LINE_RE.fullmatch(text)
    if not match:
        raise ValueError(f"Invalid handicap line '{raw}'.")

    sign = match.group(1) or '+'
    magnitude = format(Decimal(match.group(2)).normalize(), 'f')
    return f"{sign}{magnitude}"
