"""
Tests for the background mesh worker.
"""

import pytest

from dotmesh.config import GenerationParams
from dotmesh.errors import InvalidInputError
from dotmesh.worker import (
    ErrorMessage,
    ExportObjJob,
    GenerateMeshJob,
    MeshWorker,
    OptimizeMeshJob,
    ProgressMessage,
    SuccessMessage,
    decode_request,
)
from meshing.assembler import assemble_pattern
from meshing.geometry import DotPattern
from meshing.optimizer import OptimizationResult

UNIT_PARAMS = {"cubeSize": 1.0, "cubeHeight": 1.0, "spacing": 0.0, "generateBase": False}


def generate_request(task_id="t1", pattern=None, **payload):
    payload = {
        "taskId": task_id,
        "dotPattern": [[True]] if pattern is None else pattern,
        **payload,
    }
    return {"type": "GENERATE_MESH", "payload": payload}


@pytest.fixture
def messages():
    return []


@pytest.fixture
def worker(messages):
    """Create worker that records every delivered message."""
    return MeshWorker(listener=messages.append)


def progress_of(messages):
    return [m.progress for m in messages if isinstance(m, ProgressMessage)]


class TestDecodeRequest:
    """Tests for request decoding."""

    def test_generate(self):
        job = decode_request(generate_request(generationParams=UNIT_PARAMS))

        assert isinstance(job, GenerateMeshJob)
        assert job.task_id == "t1"
        assert job.pattern.width == 1
        assert job.params.cube_size == 1.0
        assert job.params.generate_base is False

    def test_dict_pattern(self):
        job = decode_request(
            generate_request(pattern={"width": 2, "height": 1, "data": [[True, False]]})
        )
        assert job.pattern.active_count == 1

    def test_defaults_when_params_missing(self):
        defaults = GenerationParams(cube_size=4.0)
        job = decode_request(generate_request(), defaults)
        assert job.params == defaults

    def test_scale_without_params(self):
        """Test scale makes touching cubes of that size."""
        job = decode_request(generate_request(scale=3))

        assert job.params.cube_size == 3.0
        assert job.params.cube_height == 3.0
        assert job.params.spacing == 0.0

    def test_include_background_overrides(self):
        job = decode_request(
            generate_request(generationParams={**UNIT_PARAMS, "generateBase": False}, includeBackground=True)
        )
        assert job.params.generate_base is True

    def test_optimize_and_export(self, unit_cube):
        mesh_data = unit_cube.to_dict()
        optimize_job = decode_request(
            {"type": "OPTIMIZE_MESH", "payload": {"taskId": "o", "meshData": mesh_data}}
        )
        export_job = decode_request(
            {"type": "EXPORT_OBJ", "payload": {"taskId": "e", "meshData": mesh_data, "precision": 3}}
        )

        assert isinstance(optimize_job, OptimizeMeshJob)
        assert optimize_job.level == "medium"
        assert optimize_job.mesh.face_count == 12
        assert isinstance(export_job, ExportObjJob)
        assert export_job.precision == 3

    @pytest.mark.parametrize(
        "message, error",
        [
            ("not a request", "must be an object"),
            ({"type": "GENERATE_MESH"}, "no payload"),
            ({"type": "GENERATE_MESH", "payload": {"dotPattern": [[True]]}}, "no taskId"),
            ({"type": "SLICE", "payload": {"taskId": "t"}}, "Unknown job type"),
            ({"type": "GENERATE_MESH", "payload": {"taskId": "t"}}, "no valid dotPattern"),
            (
                {"type": "OPTIMIZE_MESH", "payload": {"taskId": "t", "optimizationLevel": "max"}},
                "Unknown optimization level",
            ),
            (
                {"type": "GENERATE_MESH", "payload": {"taskId": "t", "dotPattern": [[True]],
                                                      "generationParams": {"cubeSize": -1}}},
                "Cube size must be between 0 and 50mm",
            ),
        ],
    )
    def test_invalid(self, message, error):
        with pytest.raises(InvalidInputError, match=error):
            decode_request(message)


class TestMeshWorker:
    """Tests for job processing."""

    def test_generate(self, worker, messages):
        """Test progress milestones followed by one success."""
        terminal = worker.process(generate_request(generationParams=UNIT_PARAMS))

        assert progress_of(messages) == [10, 50, 70, 90, 100]
        assert messages[-1] is terminal
        assert isinstance(terminal, SuccessMessage)
        assert terminal.task_id == "t1"

        result = terminal.result
        assert result.mesh.vertex_count == 8
        assert result.mesh.face_count == 12
        assert (result.width, result.height) == (1, 1)
        assert result.scale == 1.0
        assert result.has_background is False

    def test_generate_scale_and_background(self, worker):
        terminal = worker.process(generate_request(scale=3, includeBackground=False))

        assert terminal.result.scale == 3.0
        assert terminal.result.has_background is False
        assert terminal.result.mesh.bounds.size.x == pytest.approx(3.0)

    def test_empty_pattern(self, worker, messages):
        terminal = worker.process(generate_request(pattern=[]))

        assert isinstance(terminal, ErrorMessage)
        assert terminal.error.startswith("Mesh generation failed:")
        assert "dimensions" in terminal.error
        assert messages == [terminal]

    def test_string_pattern_rejected(self, worker, messages):
        """Test text rows are not read character by character as dots."""
        terminal = worker.process(generate_request(pattern=["01", "10"], generationParams=UNIT_PARAMS))

        assert isinstance(terminal, ErrorMessage)
        assert terminal.error.startswith("Mesh generation failed:")
        assert "must be a boolean" in terminal.error
        assert messages == [terminal]

    def test_invalid_request(self, worker, messages):
        terminal = worker.process({"type": "GENERATE_MESH", "payload": {"taskId": "bad"}})

        assert isinstance(terminal, ErrorMessage)
        assert terminal.task_id == "bad"
        assert terminal.error.startswith("Invalid job request:")
        assert messages == [terminal]

    def test_optimize(self, worker, messages, unit_params):
        raw = assemble_pattern(DotPattern.from_rows([[True, True]]), unit_params)
        terminal = worker.process(
            {"type": "OPTIMIZE_MESH",
             "payload": {"taskId": "o1", "meshData": raw.to_dict(), "optimizationLevel": "high"}}
        )

        assert progress_of(messages) == [10, 30, 60, 80, 95, 100]
        assert isinstance(terminal.result, OptimizationResult)
        assert terminal.result.level == "high"
        assert terminal.result.mesh.face_count == 20
        assert terminal.to_dict()["payload"]["result"]["vertexReduction"] == "25.0%"

    def test_optimize_without_mesh(self, worker, messages):
        terminal = worker.process({"type": "OPTIMIZE_MESH", "payload": {"taskId": "o2"}})

        assert isinstance(terminal, ErrorMessage)
        assert terminal.error == "Mesh optimization failed: no mesh data provided"
        assert progress_of(messages) == [10]

    def test_export(self, worker, messages, unit_cube):
        terminal = worker.process(
            {"type": "EXPORT_OBJ",
             "payload": {"taskId": "e1", "meshData": unit_cube.to_dict(), "filename": "cube.obj",
                         "precision": 2, "includeComments": False}}
        )

        assert progress_of(messages) == [10, 90, 100]
        result = terminal.result
        assert result.filename == "cube.obj"
        assert result.obj_content.startswith("v -0.50 -0.50 -0.50\n")
        assert result.size == len(result.obj_content.encode("utf-8"))
        assert result.stats.face_count == 12

        payload = terminal.to_dict()["payload"]
        assert set(payload["result"]) == {"objContent", "filename", "size", "stats"}

    def test_export_default_filename(self, worker, unit_cube):
        terminal = worker.process(
            {"type": "EXPORT_OBJ", "payload": {"taskId": "e2", "meshData": unit_cube.to_dict()}}
        )

        assert terminal.result.filename.startswith("dot-art-model-")
        assert terminal.result.filename.endswith(".obj")
        assert terminal.result.obj_content.startswith("# Dot Art 3D Model")

    def test_export_without_mesh(self, worker):
        terminal = worker.process({"type": "EXPORT_OBJ", "payload": {"taskId": "e3"}})
        assert terminal.error == "OBJ export failed: no mesh data provided"

    def test_cancel_queued(self, worker, messages):
        """Test a task cancelled before it runs delivers nothing."""
        task_id = worker.submit(generate_request(generationParams=UNIT_PARAMS))
        worker.cancel(task_id)
        worker.start()
        try:
            worker.join()
        finally:
            worker.stop(timeout=5)

        assert messages == []
        assert worker.outbox.empty()

        worker.process(generate_request(generationParams=UNIT_PARAMS))
        assert len(messages) == 6

    def test_cancel_in_flight(self):
        """Test cancelling mid-run suppresses the rest of the task's messages."""
        delivered = []

        def listener(message):
            delivered.append(message)
            worker.cancel(message.task_id)

        worker = MeshWorker(listener=listener)
        terminal = worker.process(generate_request(generationParams=UNIT_PARAMS))

        assert isinstance(terminal, SuccessMessage)
        assert progress_of(delivered) == [10]
        assert len(delivered) == 1
        assert worker.outbox.qsize() == 1

    def test_cancel_finished_task(self, worker, messages):
        """Test cancelling a finished or unknown id does not affect later tasks."""
        worker.process(generate_request(generationParams=UNIT_PARAMS))
        worker.cancel("t1")
        worker.cancel("never-submitted")

        terminal = worker.process(generate_request(generationParams=UNIT_PARAMS))

        assert messages[-1] is terminal
        assert len(messages) == 12
        assert [m.task_id for m in messages if m.terminal] == ["t1", "t1"]

    def test_failing_listener(self):
        """Test a listener error neither escapes process() nor drops the outbox copy."""
        def listener(message):
            raise RuntimeError("listener failed")

        worker = MeshWorker(listener=listener)
        terminal = worker.process(generate_request(pattern=[]))

        assert isinstance(terminal, ErrorMessage)
        assert worker.outbox.get_nowait() is terminal

    def test_failing_listener_keeps_thread_alive(self):
        """Test later tasks still get their messages after a listener error."""
        delivered = []

        def listener(message):
            if message.task_id == "bad":
                raise RuntimeError("listener failed")
            delivered.append(message)

        worker = MeshWorker(listener=listener)
        worker.start()
        try:
            worker.submit(generate_request("bad", pattern=[]))
            worker.submit(generate_request("good", generationParams=UNIT_PARAMS))
            worker.join()
            assert worker.running
        finally:
            worker.stop(timeout=5)

        assert [m.task_id for m in delivered if m.terminal] == ["good"]
        outbox = [worker.outbox.get_nowait() for _ in range(worker.outbox.qsize())]
        assert [m.task_id for m in outbox if m.terminal] == ["bad", "good"]

    def test_threaded(self, worker, messages):
        """Test queued jobs each end with one terminal message."""
        worker.start()
        try:
            first = worker.submit(generate_request("a", generationParams=UNIT_PARAMS))
            second = worker.submit(
                {"type": "GENERATE_MESH", "payload": {"dotPattern": [[True, True]],
                                                      "generationParams": UNIT_PARAMS}}
            )
            worker.join()
        finally:
            worker.stop(timeout=5)

        assert first == "a"
        assert second.startswith("task-")
        assert not worker.running

        terminals = [m for m in messages if m.terminal]
        assert [m.task_id for m in terminals] == [first, second]
        assert all(isinstance(m, SuccessMessage) for m in terminals)
        assert worker.outbox.qsize() == len(messages)


class TestMessages:
    """Tests for message payload shapes."""

    def test_progress(self):
        assert ProgressMessage("t", 50).to_dict() == {
            "type": "PROGRESS",
            "payload": {"taskId": "t", "progress": 50},
        }

    def test_error(self):
        assert ErrorMessage("t", "boom").to_dict() == {
            "type": "ERROR",
            "payload": {"taskId": "t", "error": "boom"},
        }

    def test_generate_result(self, worker):
        data = worker.process(generate_request(generationParams=UNIT_PARAMS)).to_dict()

        assert data["type"] == "SUCCESS"
        result = data["payload"]["result"]
        assert result["dimensions"] == {"width": 1, "height": 1}
        assert result["hasBackground"] is False
        assert result["meshData"]["stats"]["faceCount"] == 12
