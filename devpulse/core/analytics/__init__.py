"""Analytics calculators over mirrored GitHub activity."""

from .burnout import BurnoutAssessment, assess_burnout, calculate_burnout_risk
from .data_processor import DailyMetrics, process_and_save_metrics
from .productivity import (
    TimeRange,
    calculate_productivity_metrics,
    get_productivity_trends,
    get_work_pattern_analysis,
)
from .team_collaboration import (
    analyze_knowledge_distribution,
    analyze_team_collaboration,
    calculate_team_velocity,
    get_team_metrics,
)
from .trends import get_trend_data

__all__ = [
    "BurnoutAssessment",
    "DailyMetrics",
    "TimeRange",
    "analyze_knowledge_distribution",
    "analyze_team_collaboration",
    "assess_burnout",
    "calculate_burnout_risk",
    "calculate_productivity_metrics",
    "calculate_team_velocity",
    "get_productivity_trends",
    "get_team_metrics",
    "get_trend_data",
    "get_work_pattern_analysis",
    "process_and_save_metrics",
]
