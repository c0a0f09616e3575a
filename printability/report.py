"""
Quality report data structures.

All findings are immutable; ``to_dict`` produces the camelCase shape the
dashboard consumes and ``QualityReport.from_dict`` reads it back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from meshing.geometry import Vector3

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}
WARNING_ORDER = {"error": 0, "warning": 1, "info": 2}


@dataclass(frozen=True)
class OverhangFinding:
    """Downward face too far from vertical to print unsupported."""

    position: Vector3
    angle: float
    severity: str  # "low", "medium", "high"
    suggestion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "angle": self.angle,
            "severity": self.severity,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OverhangFinding":
        return cls(
            position=Vector3.from_dict(data["position"]),
            angle=float(data["angle"]),
            severity=data["severity"],
            suggestion=data["suggestion"],
        )


@dataclass(frozen=True)
class BridgeFinding:
    """Unsupported horizontal span."""

    start_point: Vector3
    end_point: Vector3
    length: float
    printable: bool
    support_suggestion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startPoint": self.start_point.to_dict(),
            "endPoint": self.end_point.to_dict(),
            "length": self.length,
            "printable": self.printable,
            "supportSuggestion": self.support_suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeFinding":
        return cls(
            start_point=Vector3.from_dict(data["startPoint"]),
            end_point=Vector3.from_dict(data["endPoint"]),
            length=float(data["length"]),
            printable=bool(data["printable"]),
            support_suggestion=data["supportSuggestion"],
        )


@dataclass(frozen=True)
class ThinArea:
    """Sample point whose measured wall is below the recommended minimum."""

    position: Vector3
    thickness: float

    def to_dict(self) -> Dict[str, Any]:
        return {"position": self.position.to_dict(), "thickness": self.thickness}


@dataclass(frozen=True)
class ThicknessAnalysis:
    """Wall thickness from inward ray casts."""

    min_thickness: float
    average_thickness: float
    thin_areas: Tuple[ThinArea, ...]
    recommended_minimum: float
    sample_count: int = 0

    @property
    def measured(self) -> bool:
        """False when no ray hit an opposite wall."""
        return self.sample_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minThickness": self.min_thickness,
            "averageThickness": self.average_thickness,
            "thinAreas": [a.to_dict() for a in self.thin_areas],
            "recommendedMinimum": self.recommended_minimum,
            "sampleCount": self.sample_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThicknessAnalysis":
        return cls(
            min_thickness=float(data["minThickness"]),
            average_thickness=float(data["averageThickness"]),
            thin_areas=tuple(
                ThinArea(Vector3.from_dict(a["position"]), float(a["thickness"]))
                for a in data.get("thinAreas", [])
            ),
            recommended_minimum=float(data["recommendedMinimum"]),
            sample_count=int(data.get("sampleCount", 0)),
        )


@dataclass(frozen=True)
class GeometryAnalysis:
    """Topology and integrity metrics."""

    manifoldness: float  # 0-100
    watertightness: float  # 0-100
    self_intersections: int
    duplicate_vertices: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifoldness": self.manifoldness,
            "watertightness": self.watertightness,
            "selfIntersections": self.self_intersections,
            "duplicateVertices": self.duplicate_vertices,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeometryAnalysis":
        return cls(
            manifoldness=float(data["manifoldness"]),
            watertightness=float(data["watertightness"]),
            self_intersections=int(data["selfIntersections"]),
            duplicate_vertices=int(data["duplicateVertices"]),
        )


@dataclass(frozen=True)
class PrintabilityAnalysis:
    """Overhang, support, wall thickness and bridging findings."""

    overhangs: Tuple[OverhangFinding, ...]
    support_need: float  # 0-100
    wall_thickness: ThicknessAnalysis
    bridging: Tuple[BridgeFinding, ...]

    @property
    def unprintable_bridges(self) -> int:
        return sum(1 for b in self.bridging if not b.printable)

    def overhang_count(self, severity: str) -> int:
        return sum(1 for o in self.overhangs if o.severity == severity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overhangs": [o.to_dict() for o in self.overhangs],
            "supportNeed": self.support_need,
            "wallThickness": self.wall_thickness.to_dict(),
            "bridging": [b.to_dict() for b in self.bridging],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintabilityAnalysis":
        return cls(
            overhangs=tuple(OverhangFinding.from_dict(o) for o in data.get("overhangs", [])),
            support_need=float(data["supportNeed"]),
            wall_thickness=ThicknessAnalysis.from_dict(data["wallThickness"]),
            bridging=tuple(BridgeFinding.from_dict(b) for b in data.get("bridging", [])),
        )


@dataclass(frozen=True)
class Recommendation:
    """Suggested fix, ``type`` is "geometry" or "printing"."""

    type: str
    priority: str  # "low", "medium", "high"
    message: str
    action: str
    expected_improvement: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "priority": self.priority,
            "message": self.message,
            "action": self.action,
            "expectedImprovement": self.expected_improvement,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recommendation":
        return cls(
            type=data["type"],
            priority=data["priority"],
            message=data["message"],
            action=data["action"],
            expected_improvement=data["expectedImprovement"],
        )


@dataclass(frozen=True)
class QualityWarning:
    """Problem notice, ``severity`` is "info", "warning" or "error"."""

    category: str
    severity: str
    message: str
    resolution: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityWarning":
        return cls(
            category=data["category"],
            severity=data["severity"],
            message=data["message"],
            resolution=data["resolution"],
        )


@dataclass(frozen=True)
class QualityReport:
    """Printability assessment of one mesh."""

    model_id: str
    overall_score: int  # 0-100
    geometry: GeometryAnalysis
    printability: PrintabilityAnalysis
    recommendations: Tuple[Recommendation, ...] = ()
    warnings: Tuple[QualityWarning, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_print_ready(self) -> bool:
        """Check if the mesh can be sliced as a closed solid."""
        return (
            self.geometry.manifoldness == 100
            and self.geometry.watertightness == 100
            and self.geometry.self_intersections == 0
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "modelId": self.model_id,
            "timestamp": self.timestamp.isoformat(),
            "overallScore": self.overall_score,
            "geometryAnalysis": self.geometry.to_dict(),
            "printabilityAnalysis": self.printability.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "warnings": [w.to_dict() for w in self.warnings],
            "isPrintReady": self.is_print_ready,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityReport":
        timestamp: Optional[str] = data.get("timestamp")
        return cls(
            model_id=data["modelId"],
            overall_score=int(data["overallScore"]),
            geometry=GeometryAnalysis.from_dict(data["geometryAnalysis"]),
            printability=PrintabilityAnalysis.from_dict(data["printabilityAnalysis"]),
            recommendations=tuple(
                Recommendation.from_dict(r) for r in data.get("recommendations", [])
            ),
            warnings=tuple(QualityWarning.from_dict(w) for w in data.get("warnings", [])),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc)
            ),
        )


@dataclass(frozen=True)
class QualityComparison:
    """Score delta and per-field changes from report A to report B."""

    overall_score_difference: int
    better_model: str
    improvements: Tuple[str, ...]
    regressions: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScoreDifference": self.overall_score_difference,
            "betterModel": self.better_model,
            "improvements": list(self.improvements),
            "regressions": list(self.regressions),
        }
