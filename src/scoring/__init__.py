# ABOUTME: Score models and services for the five metric domains and the course leaderboard.
# ABOUTME: Each service takes a record store and a raw-data source.

from .confusion import ConfusionService, confusion_score
from .engagement import EngagementService, engagement_category, engagement_score
from .leaderboard import LeaderboardRanker, LeaderboardService
from .lecture_quality import LectureQualityService, recompute_quality
from .momentum import MomentumService, engagement_rate, momentum_score
from .productivity import ProductivityService, productivity_score, week_start

__all__ = [
    "ConfusionService",
    "EngagementService",
    "LeaderboardRanker",
    "LeaderboardService",
    "LectureQualityService",
    "MomentumService",
    "ProductivityService",
    "confusion_score",
    "engagement_category",
    "engagement_rate",
    "engagement_score",
    "momentum_score",
    "productivity_score",
    "recompute_quality",
    "week_start",
]
