"""Tests for the task and tool endpoints."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from ooda_agent.api.main import app
from ooda_agent.errors import ModelTransportError

client = TestClient(app)


class TestToolsEndpoint:
    """Tests for /v1/tools endpoint."""

    def test_list_tools_returns_200(self):
        response = client.get("/v1/tools")
        assert response.status_code == 200

    def test_tools_sorted_with_tiers(self):
        tools = client.get("/v1/tools").json()["tools"]
        names = [t["name"] for t in tools]
        assert names == sorted(names)
        tiers = {t["name"]: t["tier"] for t in tools}
        assert tiers["Conclude"] == "terminal"
        assert tiers["SandboxedPython"] == "advanced"
        assert tiers["Calculate"] == "simple"

    def test_tool_formats(self):
        tools = {t["name"]: t for t in client.get("/v1/tools").json()["tools"]}
        keys = [f["key"] for f in tools["SandboxedPython"]["output_format"]]
        assert keys == ["stdout", "stderr"]


@pytest.fixture
def patched_task_deps(scripted_model, make_accountant):
    """Patch the model client and token accountant used by the tasks route."""

    def _patch(replies, context_size=100_000):
        model = scripted_model(replies)
        llm_patch = patch("ooda_agent.api.routes.tasks.LLMClient", return_value=model)
        accountant_patch = patch(
            "ooda_agent.api.routes.tasks.TiktokenAccountant",
            return_value=make_accountant(context_size),
        )
        return model, llm_patch, accountant_patch

    return _patch


class TestTasksEndpoint:
    """Tests for /v1/tasks endpoint."""

    def test_task_concludes(self, patched_task_deps, action):
        model, llm_patch, accountant_patch = patched_task_deps(
            [
                action("Calculate", {"expression": "6*7"}),
                action("Conclude", {"conclusion": "42"}),
            ]
        )

        with llm_patch, accountant_patch:
            response = client.post("/v1/tasks", json={"task": "What is 6*7?"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "concluded"
        assert data["conclusions"] == [
            {"original_question": "What is 6*7?", "conclusion": "42"}
        ]
        assert [s["command"] for s in data["steps"]] == ["Calculate", "Conclude"]
        assert data["events"][-1] == {"kind": "conclusion", "text": "42"}
        assert data["usage"]["total_tokens"] == 30
        assert data["id"].startswith("task-")
        assert model.closed

    def test_task_incomplete(self, patched_task_deps, action):
        _, llm_patch, accountant_patch = patched_task_deps(
            [action("Calculate", {"expression": "1+1"})]
        )

        with llm_patch, accountant_patch:
            response = client.post("/v1/tasks", json={"task": "Loop", "max_steps": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "incomplete"
        assert data["conclusions"] == []
        assert len(data["steps"]) == 1

    def test_transport_error_returns_502(self, patched_task_deps):
        model, llm_patch, accountant_patch = patched_task_deps(
            [ModelTransportError("upstream down")]
        )

        with llm_patch, accountant_patch:
            response = client.post("/v1/tasks", json={"task": "Hi"})

        assert response.status_code == 502
        assert "upstream down" in response.json()["detail"]
        assert model.closed

    def test_context_overflow_returns_422(self, patched_task_deps, action):
        _, llm_patch, accountant_patch = patched_task_deps(
            [action("Conclude", {"conclusion": "x"})],
            context_size=100,
        )

        with llm_patch, accountant_patch:
            response = client.post("/v1/tasks", json={"task": "Hi"})

        assert response.status_code == 422
        assert "too long" in response.json()["detail"]

    def test_empty_task_rejected(self):
        response = client.post("/v1/tasks", json={"task": ""})
        assert response.status_code == 400

    def test_missing_task_rejected(self):
        response = client.post("/v1/tasks", json={})
        assert response.status_code == 400
