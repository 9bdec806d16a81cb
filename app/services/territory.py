"""Territory graph: which chapters a member may play, and what unlocks next.

Seven territories: chapter 1 is the hub, chapters 2..7 the outer ring. Unlocks
follow directed edges with out-degree at most 1. The default graph is a chain
(conquering N makes N+1 available); other topologies can be swapped in without
changing how progress rows are written.
"""
from collections.abc import Iterable, Mapping

from app.schemas.syllabus import CHAPTER_COUNT

LOCKED = "locked"
AVAILABLE = "available"
CONQUERED = "conquered"
CONTESTED = "contested"

COMPLETED_STATUSES = frozenset({CONQUERED, CONTESTED})
PLAYABLE_STATUSES = frozenset({AVAILABLE, CONTESTED})

# locked -> available -> {conquered | contested}; contested may be retried
TRANSITIONS = {
    LOCKED: frozenset({AVAILABLE}),
    AVAILABLE: frozenset({CONQUERED, CONTESTED}),
    CONTESTED: frozenset({CONQUERED, CONTESTED}),
    CONQUERED: frozenset(),
}


class TerritoryGraph:
    def __init__(self, edges: Mapping[int, int], initial: int = 1, size: int = CHAPTER_COUNT):
        chapters = range(1, size + 1)
        if initial not in chapters:
            raise ValueError(f"initial chapter {initial} outside 1..{size}")
        for src, dst in edges.items():
            if src not in chapters or dst not in chapters:
                raise ValueError(f"edge {src}->{dst} outside 1..{size}")
            if src == dst:
                raise ValueError(f"self-loop on chapter {src}")
        self._edges = dict(edges)
        self.initial = initial
        self.size = size

    @classmethod
    def linear(cls, size: int = CHAPTER_COUNT) -> "TerritoryGraph":
        return cls({n: n + 1 for n in range(1, size)}, initial=1, size=size)

    @property
    def chapters(self) -> range:
        return range(1, self.size + 1)

    def next_chapter(self, chapter_number: int) -> int | None:
        """Chapter unlocked by conquering `chapter_number`; None if terminal."""
        return self._edges.get(chapter_number)

    def default_status(self, chapter_number: int) -> str:
        """Status implied by the absence of a progress row."""
        return AVAILABLE if chapter_number == self.initial else LOCKED

    def effective_status(self, rows: Iterable, user_id: int, chapter_number: int) -> str:
        for row in rows:
            if row.user_id == user_id and row.chapter_number == chapter_number:
                return row.status
        return self.default_status(chapter_number)

    def completed_by(self, rows: Iterable, chapter_number: int) -> list[int]:
        return [
            r.user_id for r in rows
            if r.chapter_number == chapter_number and r.status in COMPLETED_STATUSES
        ]


LINEAR_GRAPH = TerritoryGraph.linear()


def is_playable(status: str) -> bool:
    return status in PLAYABLE_STATUSES


def can_transition(old: str, new: str) -> bool:
    return new in TRANSITIONS.get(old, frozenset())


def statuses_leading_to(new: str) -> list[str]:
    """Statuses a row may be in for `new` to be written over it."""
    return sorted(old for old in TRANSITIONS if can_transition(old, new))
