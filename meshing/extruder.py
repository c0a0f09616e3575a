"""
Cell extrusion: one rectangular prism per active dot.
"""

from typing import Iterator, Tuple

import numpy as np

from dotmesh.config import GenerationParams
from dotmesh.errors import InvalidInputError
from meshing.geometry import DotPattern, MeshData
from meshing.stats import face_normals

# Corner order: bottom ring (y-) then top ring (y+), counter-clockwise seen from above
_CORNER_SIGNS = np.array([
    [-1, -1, -1],
    [1, -1, -1],
    [1, -1, 1],
    [-1, -1, 1],
    [-1, 1, -1],
    [1, 1, -1],
    [1, 1, 1],
    [-1, 1, 1],
], dtype=np.float64)

# Two outward-wound triangles per side. Opposite sides use mirrored diagonals
# so touching cells produce coincident triangles.
_BOX_FACES = np.array([
    [0, 1, 2], [0, 2, 3],  # bottom (-y)
    [4, 6, 5], [4, 7, 6],  # top (+y)
    [2, 7, 3], [2, 6, 7],  # front (+z)
    [0, 4, 1], [1, 4, 5],  # back (-z)
    [1, 6, 2], [1, 5, 6],  # right (+x)
    [0, 7, 4], [0, 3, 7],  # left (-x)
], dtype=np.int64)

_BOX_NORMALS = np.repeat(np.array([
    [0, -1, 0],
    [0, 1, 0],
    [0, 0, 1],
    [0, 0, -1],
    [1, 0, 0],
    [-1, 0, 0],
], dtype=np.float64), 2, axis=0)


def cell_center(x: int, y: int, params: GenerationParams) -> Tuple[float, float, float]:
    """Centre of the solid for grid cell ``(x, y)``; rows run along +z."""
    return (x * params.pitch, 0.0, y * params.pitch)


def extrude_cell(x: int, y: int, params: GenerationParams) -> MeshData:
    """
    Build the 8-vertex, 12-triangle solid for one active cell.

    Args:
        x: Column index
        y: Row index
        params: Generation parameters

    Returns:
        Closed prism with outward normals
    """
    if params.cube_size <= 0 or params.cube_height <= 0:
        raise InvalidInputError(
            f"Cube size and height must be positive (got {params.cube_size}, {params.cube_height})"
        )

    half = np.array([params.cube_size / 2, params.cube_height / 2, params.cube_size / 2])
    vertices = _CORNER_SIGNS * half
    chamfered = params.chamfer_edges and params.chamfer_size > 0
    if chamfered:
        # Inset the top ring; the sides become slanted but the solid stays closed
        inset = min(params.chamfer_size, half[0] * 0.99)
        vertices[4:, [0, 2]] -= np.sign(vertices[4:, [0, 2]]) * inset

    vertices = vertices + np.array(cell_center(x, y, params))
    faces = _BOX_FACES.copy()
    normals = face_normals(vertices, faces) if chamfered else _BOX_NORMALS.copy()

    return MeshData(vertices=vertices, faces=faces, normals=normals)


def extrude_pattern(pattern: DotPattern, params: GenerationParams) -> Iterator[MeshData]:
    """Yield one cell solid per active dot, in row-major order."""
    for x, y in pattern.iter_active():
        yield extrude_cell(x, y, params)
