"""
Printability module for the dot pattern mesh generator.

Contains:
- Quality report data structures
- Edge topology, self-intersection and ray-cast analysis
- Overhang, wall thickness and bridging checks
- Report comparison, ranking and optimisation plans
"""

from printability.report import (
    BridgeFinding,
    GeometryAnalysis,
    OverhangFinding,
    PrintabilityAnalysis,
    QualityComparison,
    QualityReport,
    QualityWarning,
    Recommendation,
    ThicknessAnalysis,
    ThinArea,
)
from printability.assessor import QualityAssessor
from printability.compare import (
    compare_quality,
    create_measurement,
    generate_optimization_plan,
    rank_reports,
)

__all__ = [
    "BridgeFinding",
    "GeometryAnalysis",
    "OverhangFinding",
    "PrintabilityAnalysis",
    "QualityComparison",
    "QualityReport",
    "QualityWarning",
    "Recommendation",
    "ThicknessAnalysis",
    "ThinArea",
    "QualityAssessor",
    "compare_quality",
    "create_measurement",
    "generate_optimization_plan",
    "rank_reports",
]
