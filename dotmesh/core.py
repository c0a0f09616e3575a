"""
Core module for the dot pattern mesh generator.

Provides the main DotMeshGenerator class that orchestrates the pipeline:
1. Cell extrusion and assembly
2. Vertex deduplication
3. Face optimisation
4. Stats calculation
5. OBJ/STL/PLY export
6. Printability assessment
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from dotmesh.config import Config, GenerationParams
from dotmesh.errors import InvalidInputError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def _report(progress: Optional[ProgressCallback], percent: int) -> None:
    if progress is not None:
        progress(percent)


class DotMeshGenerator:
    """
    Main class for turning dot patterns into printable meshes.

    Example:
        >>> from dotmesh import DotMeshGenerator, Config
        >>> from meshing import DotPattern
        >>> generator = DotMeshGenerator(Config())
        >>> pattern = DotPattern.from_text("#.#\\n.#.\\n#.#")
        >>> mesh = generator.generate(pattern)
        >>> generator.export(mesh, "output/pattern.obj")
        >>> report = generator.assess(mesh)
    """

    def __init__(self, config: Optional[Config] = None):
        """
        Initialize the DotMeshGenerator.

        Args:
            config: Configuration object. If None, uses default config.
        """
        self.config = config or Config()

        self._exporter = None
        self._assessor = None

        logger.debug(f"DotMeshGenerator initialized with output dir: {self.config.output_dir}")

    @property
    def exporter(self):
        """Lazy load mesh exporter."""
        if self._exporter is None:
            from meshing.export import MeshExporter
            self._exporter = MeshExporter(self.config.export)
        return self._exporter

    @property
    def assessor(self):
        """Lazy load quality assessor."""
        if self._assessor is None:
            from printability import QualityAssessor
            self._assessor = QualityAssessor(self.config.quality)
        return self._assessor

    def load_pattern(self, path: Union[str, Path]):
        """
        Load a dot pattern from a ``.npy`` array or a text grid.

        Args:
            path: Path to the pattern file

        Returns:
            DotPattern
        """
        from meshing.geometry import DotPattern

        path = Path(path)
        if path.suffix.lower() == ".npy":
            pattern = DotPattern.from_array(np.load(path))
        else:
            pattern = DotPattern.from_text(path.read_text(encoding="utf-8"))

        pattern.validate()
        logger.info(f"Loaded {pattern.width}x{pattern.height} pattern with {pattern.active_count} dots")
        return pattern

    def generate(
        self,
        pattern,
        params: Optional[GenerationParams] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Generate a deduplicated mesh from a dot pattern.

        Args:
            pattern: DotPattern to extrude
            params: Generation parameters (uses config if None)
            progress: Called with 10, 50, 70 and 90 as the stages finish

        Returns:
            MeshData with fresh bounds and stats
        """
        from meshing.assembler import assemble, build_base_plate
        from meshing.dedup import deduplicate_vertices
        from meshing.extruder import extrude_pattern
        from meshing.optimizer import merge_coplanar_faces
        from meshing.stats import update_mesh_stats

        params = params or self.config.generation
        pattern.validate()
        params.check()
        _report(progress, 10)

        mesh = assemble(extrude_pattern(pattern, params))
        _report(progress, 50)

        if params.generate_base:
            mesh = assemble([mesh, build_base_plate(pattern, params)])
        _report(progress, 70)

        mesh = deduplicate_vertices(mesh)
        if params.optimize_mesh or params.merge_adjacent_faces:
            mesh = merge_coplanar_faces(mesh)
        update_mesh_stats(mesh)
        _report(progress, 90)

        logger.info(
            f"Generated mesh: {mesh.stats.vertex_count} vertices, {mesh.stats.face_count} faces "
            f"from {pattern.active_count} dots"
        )
        return mesh

    def generate_preview(self, pattern, params: Optional[GenerationParams] = None):
        """Generate a lighter mesh for on-screen preview (merged, no chamfer)."""
        params = params or self.config.generation
        preview = replace(params, merge_adjacent_faces=True, chamfer_edges=False)
        return self.generate(pattern, preview)

    def optimize(
        self,
        mesh,
        level: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Optimise a mesh.

        Args:
            mesh: MeshData to optimise
            level: "low", "medium" or "high" (uses config if None)
            progress: Called with 10, 30, 60, 80 and 95

        Returns:
            OptimizationResult
        """
        from meshing.optimizer import optimize

        _report(progress, 10)
        level = level or self.config.worker.default_optimization_level
        return optimize(mesh, level, progress=progress)

    def export_obj(self, mesh, pattern=None, params: Optional[GenerationParams] = None) -> str:
        """
        Serialize a mesh to OBJ text with the configured export settings.

        Args:
            mesh: MeshData to serialize
            pattern: Source pattern recorded in the header
            params: Generation parameters recorded in the header

        Returns:
            OBJ text
        """
        return self.exporter.to_obj(mesh, pattern=pattern, params=params)

    def export(
        self,
        mesh,
        output_path: Union[str, Path],
        format: Optional[str] = None,
    ) -> Path:
        """
        Export mesh to file.

        Args:
            mesh: MeshData to export
            output_path: Output file path
            format: "obj", "stl" or "ply" (inferred from extension if None)

        Returns:
            Path to exported file
        """
        return self.exporter.export(mesh, output_path, format=format)

    def assess(self, mesh, model_id: Optional[str] = None):
        """
        Assess printability.

        Args:
            mesh: MeshData to assess
            model_id: Identifier recorded in the report

        Returns:
            QualityReport
        """
        return self.assessor.assess(mesh, model_id=model_id, stats=None if mesh.stale else mesh.stats)

    def estimate(self, pattern, params: Optional[GenerationParams] = None):
        """
        Estimate print time, material and cost.

        Returns:
            PrintEstimate
        """
        from dotmesh.estimates import calculate_print_estimates

        return calculate_print_estimates(pattern, params or self.config.generation)

    def run_pipeline(
        self,
        pattern,
        output_dir: Optional[Union[str, Path]] = None,
        name: str = "model",
        formats: Optional[List[str]] = None,
        level: Optional[str] = None,
        assess: bool = True,
    ) -> Dict:
        """
        Run the complete pipeline.

        Args:
            pattern: DotPattern to convert
            output_dir: Output directory (uses config if None)
            name: Base name of the written files
            formats: Export formats (uses config if None)
            level: Optimisation level (uses config if None)
            assess: Whether to write a quality report

        Returns:
            Dictionary with results and paths
        """
        output_dir = Path(output_dir) if output_dir is not None else self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        formats = formats or [self.config.export.format]

        from meshing.export import validate_export_filename

        errors = validate_export_filename(name)
        if errors:
            raise InvalidInputError("; ".join(errors))

        results = {
            "output_dir": str(output_dir),
            "meshes": [],
        }

        mesh = self.generate(pattern)
        optimized = self.optimize(mesh, level)
        mesh = optimized.mesh
        results["stats"] = mesh.stats.to_dict()
        results["vertex_reduction"] = optimized.vertex_reduction
        results["face_reduction"] = optimized.face_reduction

        for fmt in formats:
            path = self.export(mesh, output_dir / f"{name}.{fmt}", format=fmt)
            results["meshes"].append(str(path))

        results["estimates"] = self.estimate(pattern).to_dict()

        if assess:
            report = self.assess(mesh, model_id=name)
            report_path = output_dir / f"{name}_quality.json"
            with open(report_path, "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, indent=2)
            results["report"] = str(report_path)
            results["overall_score"] = report.overall_score

        logger.info(f"Pipeline completed. Results saved to: {output_dir}")
        return results
