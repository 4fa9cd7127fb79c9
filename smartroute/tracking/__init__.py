"""Score history tracking."""

from smartroute.tracking.scores import ScoreRecord, ScoreStore

__all__ = ["ScoreRecord", "ScoreStore"]
