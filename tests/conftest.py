"""
Pytest configuration and fixtures.
"""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from dotmesh.config import Config, GenerationParams
from meshing.geometry import DotPattern, MeshData


@pytest.fixture(scope="session")
def test_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def unit_params():
    """Unit cubes, touching, without base plate."""
    return GenerationParams(
        cube_size=1.0,
        cube_height=1.0,
        spacing=0.0,
        generate_base=False,
        optimize_mesh=False,
    )


@pytest.fixture
def single_dot():
    """1x1 pattern with its only cell active."""
    return DotPattern.from_rows([[True]])


@pytest.fixture
def checker_pattern():
    """4x4 checkerboard."""
    return DotPattern.from_array(np.indices((4, 4)).sum(axis=0) % 2 == 0)


@pytest.fixture
def empty_pattern():
    """4x4 pattern with no active dots."""
    return DotPattern.empty(4, 4)


@pytest.fixture
def unit_cube(unit_params):
    """Closed unit cube centred at the origin."""
    from meshing.extruder import extrude_cell
    return extrude_cell(0, 0, unit_params)


@pytest.fixture
def two_cube_block(unit_params):
    """Two touching unit cubes, deduplicated but with the shared wall still present."""
    from meshing.assembler import assemble_pattern
    from meshing.dedup import deduplicate_vertices
    return deduplicate_vertices(assemble_pattern(DotPattern.from_rows([[True, True]]), unit_params))


@pytest.fixture
def open_triangle():
    """Single triangle (open surface)."""
    return MeshData(
        vertices=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]]),
        faces=np.array([[0, 2, 1]]),
    )


@pytest.fixture
def mock_config(tmp_path):
    """Create configuration writing into a temporary directory."""
    return Config(output_dir=tmp_path / "output")
