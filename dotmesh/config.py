"""
Configuration management for the dot pattern mesh generator.
"""

from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Dict, List, Any
import yaml

from dotmesh.errors import InvalidInputError


# Accepted camelCase spellings used by the job message protocol
_GENERATION_ALIASES = {
    "cubeSize": "cube_size",
    "cubeHeight": "cube_height",
    "generateBase": "generate_base",
    "baseThickness": "base_thickness",
    "optimizeMesh": "optimize_mesh",
    "mergeAdjacentFaces": "merge_adjacent_faces",
    "chamferEdges": "chamfer_edges",
    "chamferSize": "chamfer_size",
}


@dataclass(frozen=True)
class GenerationParams:
    """Parameters for turning a dot pattern into a solid (all sizes in mm)."""

    cube_size: float = 2.0
    cube_height: float = 2.0
    spacing: float = 0.1
    generate_base: bool = True
    base_thickness: float = 1.0
    optimize_mesh: bool = True
    merge_adjacent_faces: bool = False
    chamfer_edges: bool = False
    chamfer_size: float = 0.1

    @property
    def pitch(self) -> float:
        """Distance between neighbouring cell centres."""
        return self.cube_size + self.spacing

    def validate(self) -> List[str]:
        """
        Check parameter ranges.

        Returns:
            List of error messages (empty when valid)
        """
        errors = []

        if self.cube_height <= 0 or self.cube_height > 50:
            errors.append("Cube height must be between 0 and 50mm")
        if self.cube_size <= 0 or self.cube_size > 50:
            errors.append("Cube size must be between 0 and 50mm")
        if self.spacing < 0 or self.spacing > 10:
            errors.append("Spacing must be between 0 and 10mm")
        if self.generate_base and (self.base_thickness <= 0 or self.base_thickness > 20):
            errors.append("Base thickness must be between 0 and 20mm")
        if self.chamfer_size < 0 or self.chamfer_size > 5:
            errors.append("Chamfer size must be between 0 and 5mm")
        if self.chamfer_edges and self.chamfer_size >= self.cube_size * 0.4:
            errors.append("Chamfer size should be less than 40% of cube size")

        return errors

    def check(self) -> None:
        """Raise InvalidInputError if any parameter is out of range."""
        errors = self.validate()
        if errors:
            raise InvalidInputError("Invalid generation parameters: " + "; ".join(errors))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationParams":
        """Build from a dict with snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _GENERATION_ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class ExportConfig:
    """Mesh export configuration."""

    format: str = "obj"  # "obj", "stl", "ply"
    precision: int = 6
    include_comments: bool = True
    scale_factor: float = 1.0
    center_model: bool = False
    filename: str = "dot-art-model"


@dataclass
class QualityConfig:
    """Printability assessment thresholds."""

    min_wall_thickness: float = 0.8  # mm, typical FDM minimum
    max_overhang_angle: float = 45.0  # degrees from vertical
    max_bridge_length: float = 10.0  # mm
    geometry_tolerance: float = 0.001  # mm
    thickness_samples: int = 256


@dataclass
class WorkerConfig:
    """Background worker configuration."""

    name: str = "dotmesh-worker"
    default_optimization_level: str = "medium"  # "low", "medium", "high"
    poll_interval: float = 0.1  # seconds


@dataclass
class Config:
    """Main configuration class."""

    output_dir: Path = field(default_factory=lambda: Path("output"))

    # Sub-configurations
    generation: GenerationParams = field(default_factory=GenerationParams)
    export: ExportConfig = field(default_factory=ExportConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        config = cls()

        if "output_dir" in data:
            config.output_dir = Path(data["output_dir"])

        if "generation" in data:
            config.generation = GenerationParams.from_dict(data["generation"])

        if "export" in data:
            for k, v in data["export"].items():
                if hasattr(config.export, k):
                    setattr(config.export, k, v)

        if "quality" in data:
            for k, v in data["quality"].items():
                if hasattr(config.quality, k):
                    setattr(config.quality, k, v)

        if "worker" in data:
            for k, v in data["worker"].items():
                if hasattr(config.worker, k):
                    setattr(config.worker, k, v)

        return config

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        data = {
            "output_dir": str(self.output_dir),
            "generation": self.generation.to_dict(),
            "export": asdict(self.export),
            "quality": asdict(self.quality),
            "worker": asdict(self.worker),
        }

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def ensure_dirs(self) -> None:
        """Create necessary directories."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
