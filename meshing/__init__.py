"""
Meshing module for the dot pattern mesh generator.

Contains:
- Geometry value types (DotPattern, MeshData)
- Cell extrusion and mesh assembly
- Vertex deduplication and face optimisation
- Stats/bounds calculation
- OBJ/STL/PLY export
"""

from meshing.geometry import Bounds, DotPattern, Face, MeshData, MeshStats, Vector3
from meshing.extruder import extrude_cell, extrude_pattern
from meshing.assembler import assemble, assemble_pattern, build_base_plate
from meshing.dedup import count_duplicate_vertices, deduplicate_vertices
from meshing.optimizer import (
    OptimizationResult,
    merge_coplanar_faces,
    optimize,
    simplify_geometry,
)
from meshing.stats import compute_bounds, compute_stats, update_mesh_stats
from meshing.export import MeshExporter, export_mesh, export_obj, read_obj, write_obj

__all__ = [
    "Bounds",
    "DotPattern",
    "Face",
    "MeshData",
    "MeshStats",
    "Vector3",
    "extrude_cell",
    "extrude_pattern",
    "assemble",
    "assemble_pattern",
    "build_base_plate",
    "count_duplicate_vertices",
    "deduplicate_vertices",
    "OptimizationResult",
    "merge_coplanar_faces",
    "optimize",
    "simplify_geometry",
    "compute_bounds",
    "compute_stats",
    "update_mesh_stats",
    "MeshExporter",
    "export_mesh",
    "export_obj",
    "read_obj",
    "write_obj",
]
