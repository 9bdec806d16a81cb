from app.services.leaderboard import build_leaderboard
from app.services.scoring import record_quiz_result, score_attempt
from app.services.territory import LINEAR_GRAPH, TerritoryGraph

__all__ = ["LINEAR_GRAPH", "TerritoryGraph", "build_leaderboard", "record_quiz_result", "score_attempt"]
