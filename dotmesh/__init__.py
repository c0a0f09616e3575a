"""
Dot Mesh Generator
==================

Turns rectangular dot patterns into 3D-printable triangle meshes and
assesses their printability.

Main Components:
- Meshing: extrusion, assembly, deduplication, optimisation, export
- Printability: manifoldness, watertightness, overhangs, wall thickness
- Worker: background task orchestration with progress messages
"""

__version__ = "0.1.0"

from dotmesh.config import Config, GenerationParams
from dotmesh.core import DotMeshGenerator

__all__ = [
    "DotMeshGenerator",
    "Config",
    "GenerationParams",
    "__version__",
]
