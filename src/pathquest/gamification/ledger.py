"""Level and coin computation.

Level N starts at ``(N - 1)^2 * 1000`` XP:
  level 1 at 0, level 2 at 1000, level 3 at 4000, level 4 at 9000, ...
"""

from __future__ import annotations

import math

from pathquest.errors import InvalidArgument

XP_PER_LEVEL_UNIT = 1000
COINS_PER_XP_DIVISOR = 10


def level_for(total_xp: int) -> int:
    """Return the level for a cumulative XP total: ``floor(sqrt(xp / 1000)) + 1``."""
    if total_xp < 0:
        raise InvalidArgument("XP cannot be negative", xp=total_xp)
    # isqrt on the floored quotient equals the float formula for integers
    return math.isqrt(total_xp // XP_PER_LEVEL_UNIT) + 1


def coins_for(xp_delta: int) -> int:
    """Coins granted alongside an XP award (10% of the XP, rounded down)."""
    if xp_delta < 0:
        raise InvalidArgument("XP delta cannot be negative", xp=xp_delta)
    return xp_delta // COINS_PER_XP_DIVISOR


def xp_for_next_level(level: int) -> int:
    """Cumulative XP at which ``level + 1`` begins."""
    return level * level * XP_PER_LEVEL_UNIT


def level_progress(total_xp: int) -> dict:
    """Compute level info from total XP (progression summary)."""
    level = level_for(total_xp)
    level_start = xp_for_next_level(level - 1)
    next_threshold = xp_for_next_level(level)
    return {
        "level": level,
        "xp_into_level": total_xp - level_start,
        "xp_for_level": next_threshold - level_start,
        "next_level": level + 1,
        "next_level_xp": next_threshold,
    }
