"""
Report comparison, ranking, optimisation plans and measurements.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Tuple

import numpy as np

from dotmesh.errors import QualityAssessmentError
from meshing.geometry import Vector3
from printability.report import QualityComparison, QualityReport

# (label, value getter, higher is better)
_TRACKED_FIELDS: List[Tuple[str, Callable[[QualityReport], float], bool]] = [
    ("manifoldness", lambda r: r.geometry.manifoldness, True),
    ("watertightness", lambda r: r.geometry.watertightness, True),
    ("self-intersections", lambda r: r.geometry.self_intersections, False),
    ("duplicate vertices", lambda r: r.geometry.duplicate_vertices, False),
    ("support need", lambda r: r.printability.support_need, False),
    ("minimum wall thickness", lambda r: r.printability.wall_thickness.min_thickness, True),
    ("overhangs", lambda r: len(r.printability.overhangs), False),
    ("unprintable bridges", lambda r: r.printability.unprintable_bridges, False),
]

MEASUREMENT_UNITS = {"distance": "mm", "angle": "degrees", "area": "mm²"}


def compare_quality(a: QualityReport, b: QualityReport) -> QualityComparison:
    """
    Compare report ``b`` against report ``a``.

    Every tracked field that changed is listed as an improvement or a
    regression; there is no tolerance band. Ties in the overall score go
    to ``a``.
    """
    improvements = []
    regressions = []
    for label, value, higher_is_better in _TRACKED_FIELDS:
        before, after = value(a), value(b)
        if after == before:
            continue
        if (after > before) == higher_is_better:
            improvements.append(f"{label} improved from {before} to {after}")
        else:
            regressions.append(f"{label} regressed from {before} to {after}")

    difference = b.overall_score - a.overall_score
    return QualityComparison(
        overall_score_difference=difference,
        better_model=b.model_id if difference > 0 else a.model_id,
        improvements=tuple(improvements),
        regressions=tuple(regressions),
    )


def identify_strengths(report: QualityReport) -> List[str]:
    strengths = []
    if report.geometry.manifoldness > 95:
        strengths.append("Excellent manifold geometry")
    if report.printability.support_need < 30:
        strengths.append("Minimal support required")
    if report.overall_score > 80:
        strengths.append("High overall quality")
    return strengths


def identify_weaknesses(report: QualityReport) -> List[str]:
    weaknesses = []
    if report.geometry.manifoldness < 80:
        weaknesses.append("Poor manifold geometry")
    if report.printability.support_need > 70:
        weaknesses.append("Requires significant support")
    if report.overall_score < 60:
        weaknesses.append("Below average quality")
    return weaknesses


@dataclass(frozen=True)
class RankedModel:
    model_id: str
    score: int
    strengths: Tuple[str, ...]
    weaknesses: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelId": self.model_id,
            "score": self.score,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
        }


@dataclass(frozen=True)
class Ranking:
    """Reports ordered by score, best first."""

    best_overall: str
    comparison: Tuple[RankedModel, ...]
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bestOverall": self.best_overall,
            "comparison": [m.to_dict() for m in self.comparison],
            "recommendations": list(self.recommendations),
        }


def rank_reports(reports: Sequence[QualityReport]) -> Ranking:
    """
    Rank several reports by overall score.

    Args:
        reports: Reports to rank

    Returns:
        Ranking with per-model strengths and weaknesses
    """
    if not reports:
        raise QualityAssessmentError("No quality reports provided for comparison")

    ranked = sorted(
        (
            RankedModel(
                model_id=r.model_id,
                score=r.overall_score,
                strengths=tuple(identify_strengths(r)),
                weaknesses=tuple(identify_weaknesses(r)),
            )
            for r in reports
        ),
        key=lambda m: m.score,
        reverse=True,
    )

    recommendations = []
    average = sum(r.overall_score for r in reports) / len(reports)
    if average < 70:
        recommendations.append("Consider improving overall model quality before printing")

    return Ranking(
        best_overall=ranked[0].model_id,
        comparison=tuple(ranked),
        recommendations=tuple(recommendations),
    )


@dataclass(frozen=True)
class PlanAction:
    action: str
    impact: str  # "low", "medium", "high"
    difficulty: str  # "easy", "medium", "hard"
    expected_improvement: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "impact": self.impact,
            "difficulty": self.difficulty,
            "expectedImprovement": self.expected_improvement,
        }


@dataclass(frozen=True)
class OptimizationPlan:
    priority: str
    actions: Tuple[PlanAction, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"priority": self.priority, "actions": [a.to_dict() for a in self.actions]}


def generate_optimization_plan(report: QualityReport) -> OptimizationPlan:
    """Suggest concrete steps to raise a report's score."""
    actions = []
    thickness = report.printability.wall_thickness

    if report.geometry.manifoldness < 95:
        actions.append(PlanAction(
            action="Fix non-manifold geometry by repairing edges and vertices",
            impact="high",
            difficulty="medium",
            expected_improvement="+15-25 quality points",
        ))
    if report.geometry.self_intersections > 0:
        actions.append(PlanAction(
            action="Resolve self-intersecting faces",
            impact="high",
            difficulty="hard",
            expected_improvement="+20-30 quality points",
        ))
    if report.printability.support_need > 80:
        actions.append(PlanAction(
            action="Redesign to reduce support requirements",
            impact="medium",
            difficulty="hard",
            expected_improvement="Reduced print time and material usage",
        ))
    if thickness.measured and thickness.min_thickness < thickness.recommended_minimum:
        actions.append(PlanAction(
            action="Increase wall thickness to minimum printable dimensions",
            impact="high",
            difficulty="easy",
            expected_improvement="Improved structural integrity",
        ))

    if report.overall_score < 50:
        priority = "high"
    elif report.overall_score < 75:
        priority = "medium"
    else:
        priority = "low"

    return OptimizationPlan(priority=priority, actions=tuple(actions))


@dataclass(frozen=True)
class Measurement:
    type: str  # "distance", "angle", "area"
    points: Tuple[Vector3, ...]
    value: float
    unit: str
    label: str
    id: str = field(default_factory=lambda: f"measurement-{uuid.uuid4().hex[:12]}")
    visible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "points": [p.to_dict() for p in self.points],
            "value": self.value,
            "unit": self.unit,
            "label": self.label,
            "visible": self.visible,
        }


def create_measurement(kind: str, points: Sequence[Vector3], label: str) -> Measurement:
    """
    Measure a distance (2 points), an angle at the middle point (3 points)
    or a planar polygon area (3+ points).
    """
    coords = np.array([p.to_array() for p in points]).reshape(-1, 3)

    if kind == "distance":
        if len(coords) != 2:
            raise QualityAssessmentError("Distance measurement requires exactly 2 points")
        value = float(np.linalg.norm(coords[1] - coords[0]))
    elif kind == "angle":
        if len(coords) != 3:
            raise QualityAssessmentError("Angle measurement requires exactly 3 points")
        u = coords[0] - coords[1]
        v = coords[2] - coords[1]
        norms = np.linalg.norm(u) * np.linalg.norm(v)
        if norms == 0:
            raise QualityAssessmentError("Angle measurement requires distinct points")
        value = float(np.degrees(np.arccos(np.clip(np.dot(u, v) / norms, -1.0, 1.0))))
    elif kind == "area":
        if len(coords) < 3:
            raise QualityAssessmentError("Area measurement requires at least 3 points")
        # Newell's method: half the magnitude of the summed edge cross products
        value = float(np.linalg.norm(np.cross(coords, np.roll(coords, -1, axis=0)).sum(axis=0)) / 2)
    else:
        raise QualityAssessmentError(f"Unsupported measurement type: {kind}")

    return Measurement(
        type=kind,
        points=tuple(points),
        value=value,
        unit=MEASUREMENT_UNITS[kind],
        label=label,
    )
