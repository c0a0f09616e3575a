"""
Mesh assembly: concatenate per-cell fragments and add the base plate.
"""

import logging
from typing import Iterable

import numpy as np

from dotmesh.config import GenerationParams
from dotmesh.errors import MeshGenerationError
from meshing.extruder import extrude_pattern
from meshing.geometry import DotPattern, MeshData

logger = logging.getLogger(__name__)


def assemble(fragments: Iterable[MeshData]) -> MeshData:
    """
    Concatenate mesh fragments into one indexed mesh.

    Each fragment's face indices are shifted by the number of vertices
    already emitted, so every face index stays inside the combined buffer.

    Args:
        fragments: Meshes to combine, in output order

    Returns:
        Combined mesh (stale stats)
    """
    vertex_blocks = []
    face_blocks = []
    normal_blocks = []
    has_normals = True
    offset = 0

    for i, fragment in enumerate(fragments):
        bad = fragment.invalid_index_count()
        if bad:
            raise MeshGenerationError(
                f"Mesh generation failed: fragment {i} has {bad} out-of-range face indices"
            )
        vertex_blocks.append(fragment.vertices)
        face_blocks.append(fragment.faces + offset)
        if fragment.normals is None:
            has_normals = False
        else:
            normal_blocks.append(fragment.normals)
        offset += fragment.vertex_count

    if not vertex_blocks:
        return MeshData(normals=np.zeros((0, 3)))

    return MeshData(
        vertices=np.concatenate(vertex_blocks),
        faces=np.concatenate(face_blocks),
        normals=np.concatenate(normal_blocks) if has_normals else None,
    )


def build_base_plate(pattern: DotPattern, params: GenerationParams) -> MeshData:
    """
    Build the base plate under the cells.

    The plate is a single upward-facing quad at
    ``y = -cube_height/2 - base_thickness`` covering every cell position plus
    one pitch of padding on each side.
    """
    pitch = params.pitch
    half = params.cube_size / 2
    y = -params.cube_height / 2 - params.base_thickness

    x0 = -half - pitch
    x1 = (pattern.width - 1) * pitch + half + pitch
    z0 = -half - pitch
    z1 = (pattern.height - 1) * pitch + half + pitch

    vertices = np.array([
        [x0, y, z0],
        [x1, y, z0],
        [x1, y, z1],
        [x0, y, z1],
    ])
    faces = np.array([[0, 2, 1], [0, 3, 2]])
    normals = np.array([[0.0, 1.0, 0.0], [0.0, 1.0, 0.0]])

    return MeshData(vertices=vertices, faces=faces, normals=normals)


def assemble_pattern(pattern: DotPattern, params: GenerationParams) -> MeshData:
    """
    Extrude every active dot and append the base plate.

    Args:
        pattern: Validated dot pattern
        params: Generation parameters

    Returns:
        Assembled (not yet deduplicated) mesh
    """
    pattern.validate()
    params.check()

    fragments = list(extrude_pattern(pattern, params))
    if params.generate_base:
        fragments.append(build_base_plate(pattern, params))

    mesh = assemble(fragments)
    logger.debug(
        f"Assembled {pattern.active_count} cells into {mesh.vertex_count} vertices, "
        f"{mesh.face_count} faces"
    )
    return mesh
