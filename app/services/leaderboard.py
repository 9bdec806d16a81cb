"""Leaderboard: per-member totals derived from a room's progress rows."""
from collections.abc import Iterable, Mapping

from app.schemas.room import LeaderboardEntrySchema
from app.services.territory import CONQUERED

UNKNOWN_USERNAME = "Unknown"


def build_leaderboard(
    members: Iterable,
    progress: Iterable,
    usernames: Mapping[int, str],
) -> list[LeaderboardEntrySchema]:
    """One entry per member, highest total points first.

    Points from every row count, contested ones included. Ties keep member order.
    Rows of users who are not members are ignored.
    """
    totals: dict[int, int] = {}
    conquered: dict[int, int] = {}
    for row in progress:
        totals[row.user_id] = totals.get(row.user_id, 0) + (row.points or 0)
        if row.status == CONQUERED:
            conquered[row.user_id] = conquered.get(row.user_id, 0) + 1

    entries = [
        LeaderboardEntrySchema(
            user_id=m.user_id,
            username=usernames.get(m.user_id) or UNKNOWN_USERNAME,
            color=m.color,
            total_points=totals.get(m.user_id, 0),
            territories_conquered=conquered.get(m.user_id, 0),
        )
        for m in members
    ]
    return sorted(entries, key=lambda e: e.total_points, reverse=True)
