"""Default capability engines shipped with the agent core."""

from orbit.engines.analysis import HeuristicAnalysisEngine
from orbit.engines.chat import NullConversationModel, OpenRouterConversationModel
from orbit.engines.execution import ActionExecutor
from orbit.engines.learning import AdaptiveLearningEngine
from orbit.engines.planning import HeuristicPlanningEngine
from orbit.engines.recommendation import StoredRecommendationEngine

__all__ = [
    "ActionExecutor",
    "AdaptiveLearningEngine",
    "HeuristicAnalysisEngine",
    "HeuristicPlanningEngine",
    "NullConversationModel",
    "OpenRouterConversationModel",
    "StoredRecommendationEngine",
]
