import pytest
from fastapi.testclient import TestClient

from mediabatch.core import ConverterConfig, TaskKind
from mediabatch.core.operations import ConversionOperation
from mediabatch.core.orchestrator import TaskOrchestrator
from mediabatch.web.server import TaskRequest, create_app


@pytest.fixture
def orchestrator(tmp_path):
    operations = {
        TaskKind.IMAGE: ConversionOperation(lambda path, options, config: path.with_suffix(".webp"), per_input=True),
        TaskKind.IMAGES_TO_PDF: ConversionOperation(lambda paths, options, config: [paths[0].with_suffix(".pdf")]),
    }
    return TaskOrchestrator(operations=operations, config=ConverterConfig(output_root=tmp_path))


@pytest.fixture
def client(orchestrator):
    return TestClient(create_app(orchestrator=orchestrator))


def test_task_request_strips_paths():
    req = TaskRequest.model_validate({"kind": "image", "input_paths": [" a.png "]})
    assert req.input_paths == ["a.png"]
    assert req.options == {}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_submitted_task_runs_and_stays_visible(client, orchestrator):
    response = client.post("/api/tasks", json={"kind": "image", "input_paths": ["a.png"], "options": {"quality": 80}})
    assert response.status_code == 202
    task_id = response.json()["id"]

    assert orchestrator.wait_until_idle(5)
    detail = client.get(f"/api/tasks/{task_id}").json()
    assert detail["status"] == "completed"
    assert detail["result_paths"] == ["a.webp"]
    assert detail["error_message"] is None
    assert [task["id"] for task in client.get("/api/tasks").json()] == [task_id]
    assert client.get("/api/queue").json() == []


def test_batch_submission_applies_fan_out_rule(client, orchestrator):
    response = client.post("/api/tasks/batch", json={"kind": "image", "input_paths": ["a.png", "b.png"]})
    assert response.status_code == 202
    assert len(response.json()) == 2

    response = client.post("/api/tasks/batch", json={"kind": "image-pdf", "input_paths": ["a.png", "b.png"]})
    assert len(response.json()) == 1
    assert response.json()[0]["kind"] == "images-to-pdf"
    assert orchestrator.wait_until_idle(5)


@pytest.mark.parametrize(
    "payload",
    [
        {"kind": "image", "input_paths": []},
        {"kind": "image", "input_paths": [""]},
        {"input_paths": ["a.png"]},
        {"kind": "teleport", "input_paths": ["a.png"]},
    ],
)
def test_invalid_submissions_never_reach_queue(client, orchestrator, payload):
    events = []
    orchestrator.subscribe(events.append)
    response = client.post("/api/tasks", json=payload)
    assert response.status_code == 422
    assert events == []
    assert client.get("/api/tasks").json() == []


def test_unknown_task_is_404(client):
    assert client.get("/api/tasks/does-not-exist").status_code == 404
