from types import SimpleNamespace

from app.services.leaderboard import build_leaderboard


def member(user_id, color="#3b82f6"):
    return SimpleNamespace(user_id=user_id, color=color)


def row(user_id, status, points):
    return SimpleNamespace(user_id=user_id, status=status, points=points)


def test_totals_count_every_row_and_conquests_only_conquered():
    members = [member(1), member(2, "#10b981")]
    progress = [
        row(1, "conquered", 106),
        row(1, "contested", 20),
        row(1, "available", 0),
        row(2, "conquered", 40),
    ]
    board = build_leaderboard(members, progress, {1: "ada", 2: "bob"})

    assert [(e.username, e.total_points, e.territories_conquered) for e in board] == [
        ("ada", 126, 1),
        ("bob", 40, 1),
    ]
    assert board[1].color == "#10b981"


def test_ties_keep_member_order():
    members = [member(3), member(1), member(2)]
    progress = [row(1, "conquered", 30), row(2, "conquered", 30), row(3, "conquered", 30)]
    board = build_leaderboard(members, progress, {})
    assert [e.user_id for e in board] == [3, 1, 2]


def test_members_without_progress_and_unknown_names():
    board = build_leaderboard([member(1), member(2)], [row(2, "contested", 10)], {2: "bob"})
    assert [(e.user_id, e.username, e.total_points) for e in board] == [(2, "bob", 10), (1, "Unknown", 0)]


def test_rows_of_non_members_are_ignored():
    board = build_leaderboard([member(1)], [row(1, "conquered", 5), row(9, "conquered", 500)], {})
    assert len(board) == 1
    assert board[0].total_points == 5
