"""Tests for the pipeline orchestrator."""

from __future__ import annotations

import asyncio
import copy
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from ceedraft.pipeline.config import PipelineConfig
from ceedraft.pipeline.context import DraftRequest
from ceedraft.pipeline.orchestrator import PipelineOrchestrator
from ceedraft.providers.base import DraftGraphResult, UpstreamHTTPError, UpstreamTimeoutError
from ceedraft.providers.factory import ProviderConfigError
from ceedraft.providers.retry import RetryPolicy


class FakeClock:
    """Monotonic clock controlled by the test."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Create a mock draft adapter."""
    adapter = MagicMock()
    adapter.provider = "fake"
    adapter.model = "fake-model"
    adapter.draft_graph = AsyncMock()
    adapter.repair_graph = AsyncMock()
    return adapter


@pytest.fixture
def orchestrator(mock_adapter: MagicMock, clock: FakeClock) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        PipelineConfig(),
        adapter_factory=lambda provider, model: mock_adapter,
        retry_policy=RetryPolicy(sleep=AsyncMock()),
        clock=clock,
    )


def _request(brief: str = "Should we raise prices next quarter?") -> DraftRequest:
    return DraftRequest(brief=brief, request_id="req-test")


def _drop_status_quo(payload: dict[str, Any]) -> dict[str, Any]:
    """Remove the status-quo option and give the others their interventions back."""
    repaired = copy.deepcopy(payload)
    repaired["nodes"] = [n for n in repaired["nodes"] if n["id"] != "opt_status_quo"]
    repaired["edges"] = [e for e in repaired["edges"] if e["to"] != "opt_status_quo"]
    prices = {"opt_raise": 12.0, "opt_hold": 10.0}
    for node in repaired["nodes"]:
        if node["id"] in prices:
            node["data"] = {"interventions": {"fac_price": prices[node["id"]]}}
    return repaired


# --- success path ---


@pytest.mark.asyncio
async def test_run_success(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    valid_graph_payload: dict[str, Any],
) -> None:
    """A clean draft comes back as a 200 envelope with stable edge IDs."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(
        graph=valid_graph_payload, meta={"prompt_version": "v3"}
    )

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    body = response.body
    assert len(body["graph"]["nodes"]) == 8
    assert all(edge.get("id") for edge in body["graph"]["edges"])
    assert body["trace"]["request_id"] == "req-test"
    assert body["trace"]["engine"] == {"provider": "fake", "model": "fake-model"}
    pipeline = body["trace"]["pipeline"]
    assert list(pipeline["stage_timings"]) == [
        "draft",
        "repair",
        "threshold_sweep",
        "enrich",
        "validate",
        "package",
    ]
    assert pipeline["provenance"]["prompt_version"] == "v3"
    assert pipeline["repair_summary"]["status_quo_action"] == "none"
    assert pipeline["checkpoints_meta"]["count"] == 5
    assert body["clarifier_status"] == "complete"
    assert "structural_warnings" not in body
    mock_adapter.draft_graph.assert_awaited_once()
    mock_adapter.repair_graph.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_reuses_cached_adapter(
    mock_adapter: MagicMock, clock: FakeClock, valid_graph_payload: dict[str, Any]
) -> None:
    """The adapter factory runs once per provider/model pair."""
    factory = MagicMock(return_value=mock_adapter)
    orchestrator = PipelineOrchestrator(
        PipelineConfig(),
        adapter_factory=factory,
        retry_policy=RetryPolicy(sleep=AsyncMock()),
        clock=clock,
    )
    mock_adapter.draft_graph.side_effect = lambda args, opts: DraftGraphResult(
        graph=copy.deepcopy(valid_graph_payload)
    )

    await orchestrator.run(_request())
    await orchestrator.run(_request())

    factory.assert_called_once()
    orchestrator.reset_caches()
    assert len(orchestrator.adapter_cache) == 0


# --- error taxonomy ---


@pytest.mark.asyncio
async def test_pre_aborted_is_client_disconnect(
    orchestrator: PipelineOrchestrator, mock_adapter: MagicMock
) -> None:
    """A pre-aborted timeout is reported as a disconnect and never retried."""
    mock_adapter.draft_graph.side_effect = UpstreamTimeoutError("fake", "pre_aborted")

    response = await orchestrator.run(_request())

    assert response.status_code == 499
    assert response.body["code"] == "CEE_CLIENT_DISCONNECTED"
    assert mock_adapter.draft_graph.await_count == 1


@pytest.mark.asyncio
async def test_abort_before_draft(
    orchestrator: PipelineOrchestrator, mock_adapter: MagicMock
) -> None:
    """A client gone before the call means the adapter is never invoked."""
    abort_event = asyncio.Event()
    abort_event.set()

    response = await orchestrator.run(_request(), abort_event)

    assert response.status_code == 499
    mock_adapter.draft_graph.assert_not_awaited()


@pytest.mark.asyncio
async def test_body_timeout_retried_then_504(
    orchestrator: PipelineOrchestrator, mock_adapter: MagicMock
) -> None:
    """Body-phase timeouts are retried until attempts run out."""
    mock_adapter.draft_graph.side_effect = UpstreamTimeoutError("fake", "body", 60_000.0)

    response = await orchestrator.run(_request())

    assert response.status_code == 504
    assert response.body["code"] == "CEE_TIMEOUT"
    assert response.body["details"]["attempts"] == 2
    assert mock_adapter.draft_graph.await_count == 2


@pytest.mark.asyncio
async def test_upstream_http_error(
    orchestrator: PipelineOrchestrator, mock_adapter: MagicMock
) -> None:
    """Upstream HTTP failures map to 502 whatever the upstream status."""
    mock_adapter.draft_graph.side_effect = UpstreamHTTPError("fake", 429, "slow down")

    response = await orchestrator.run(_request())

    assert response.status_code == 502
    assert response.body["code"] == "CEE_LLM_UPSTREAM_ERROR"
    assert response.body["details"]["upstream_status"] == 429
    assert mock_adapter.draft_graph.await_count == 1


@pytest.mark.asyncio
async def test_cost_guard(orchestrator: PipelineOrchestrator, mock_adapter: MagicMock) -> None:
    """Oversized briefs are rejected before any model call."""
    response = await orchestrator.run(_request("x" * 32_004))

    assert response.status_code == 429
    assert response.body["code"] == "CEE_RATE_LIMIT"
    mock_adapter.draft_graph.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_graph(
    orchestrator: PipelineOrchestrator, mock_adapter: MagicMock
) -> None:
    """A non-object graph is rejected with malformed_graph."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph="not a graph")

    response = await orchestrator.run(_request())

    assert response.status_code == 400
    assert response.body["code"] == "CEE_GRAPH_INVALID"
    assert response.body["details"]["reason"] == "malformed_graph"


@pytest.mark.asyncio
async def test_empty_graph(orchestrator: PipelineOrchestrator, mock_adapter: MagicMock) -> None:
    """An empty graph passes every stage and fails the final gate."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph={"nodes": [], "edges": []})

    response = await orchestrator.run(_request())

    assert response.status_code == 400
    assert response.body["details"]["reason"] == "empty_graph"
    assert response.body["details"]["recovery"]


@pytest.mark.asyncio
async def test_budget_exhausted_before_repair(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    clock: FakeClock,
    valid_graph_payload: dict[str, Any],
) -> None:
    """The repair stage does not start once the request budget is spent."""

    async def slow_draft(args: Any, opts: Any) -> DraftGraphResult:
        clock.now = 95.0
        return DraftGraphResult(graph=valid_graph_payload)

    mock_adapter.draft_graph.side_effect = slow_draft

    response = await orchestrator.run(_request())

    assert response.status_code == 504
    assert response.body["code"] == "CEE_REQUEST_BUDGET_EXCEEDED"
    assert response.body["details"]["stage"] == "repair"


# --- model-assisted repair ---


@pytest.mark.asyncio
async def test_llm_repair_skipped_for_budget(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    clock: FakeClock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """Too little budget left skips the repair call with a warning."""

    async def slow_draft(args: Any, opts: Any) -> DraftGraphResult:
        clock.now = 80.0
        return DraftGraphResult(graph=droppable_status_quo_payload)

    mock_adapter.draft_graph.side_effect = slow_draft

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    codes = [w["code"] for w in response.body["structural_warnings"]]
    assert "LLM_REPAIR_SKIPPED" in codes
    summary = response.body["trace"]["pipeline"]["repair_summary"]
    assert summary["skip_repair_due_to_budget"] is True
    assert summary["repair_timeout_ms"] == 0
    mock_adapter.repair_graph.assert_not_awaited()


@pytest.mark.asyncio
async def test_llm_repair_failure_degrades(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """A failed repair call keeps the deterministic graph and warns."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph=droppable_status_quo_payload)
    mock_adapter.repair_graph.side_effect = UpstreamHTTPError("fake", 500)

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    codes = [w["code"] for w in response.body["structural_warnings"]]
    assert "LLM_REPAIR_FAILED" in codes
    mock_adapter.repair_graph.assert_awaited_once()


@pytest.mark.asyncio
async def test_llm_repair_unexpected_error_degrades(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """Errors outside the upstream taxonomy still degrade to the deterministic graph."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph=droppable_status_quo_payload)
    mock_adapter.repair_graph.side_effect = RuntimeError("sdk exploded")

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    warnings = response.body["structural_warnings"]
    failed = [w for w in warnings if w["code"] == "LLM_REPAIR_FAILED"]
    assert len(failed) == 1
    assert failed[0]["error"] == "sdk exploded"
    assert "opt_status_quo" in {n["id"] for n in response.body["graph"]["nodes"]}


@pytest.mark.asyncio
async def test_llm_repair_pre_aborted_is_client_disconnect(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """A disconnect during repair is not swallowed as a repair failure."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph=droppable_status_quo_payload)
    mock_adapter.repair_graph.side_effect = UpstreamTimeoutError("fake", "pre_aborted")

    response = await orchestrator.run(_request())

    assert response.status_code == 499
    assert response.body["code"] == "CEE_CLIENT_DISCONNECTED"
    assert response.body["details"]["stage"] == "repair"


class DraftOnlyAdapter:
    """Adapter without model-assisted repair."""

    provider = "fake"
    model = "draft-only"

    def __init__(self, graph: dict[str, Any]) -> None:
        self.graph = graph
        self.calls = 0

    async def draft_graph(self, args: Any, opts: Any) -> DraftGraphResult:
        self.calls += 1
        return DraftGraphResult(graph=copy.deepcopy(self.graph))


@pytest.mark.asyncio
async def test_llm_repair_skipped_without_repair_support(
    clock: FakeClock, droppable_status_quo_payload: dict[str, Any]
) -> None:
    """Adapters that cannot repair are skipped with an unsupported warning."""
    adapter = DraftOnlyAdapter(droppable_status_quo_payload)
    orchestrator = PipelineOrchestrator(
        PipelineConfig(),
        adapter_factory=lambda provider, model: adapter,
        retry_policy=RetryPolicy(sleep=AsyncMock()),
        clock=clock,
    )

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    assert adapter.calls == 1
    skipped = [
        w for w in response.body["structural_warnings"] if w["code"] == "LLM_REPAIR_SKIPPED"
    ]
    assert len(skipped) == 1
    assert skipped[0]["reason"] == "unsupported"
    assert "llm_repair" not in response.body["trace"]["pipeline"]["repair_trace"]


@pytest.mark.asyncio
async def test_provider_misconfiguration_not_retryable(clock: FakeClock) -> None:
    """A missing API key is a deployment fault, not a retryable upstream error."""

    def factory(provider: str, model: str) -> Any:
        raise ProviderConfigError(provider, "API key required. Set OPENAI_API_KEY.")

    orchestrator = PipelineOrchestrator(
        PipelineConfig(),
        adapter_factory=factory,
        retry_policy=RetryPolicy(sleep=AsyncMock()),
        clock=clock,
    )

    response = await orchestrator.run(_request())

    assert response.status_code == 500
    assert response.body["code"] == "CEE_INTERNAL_ERROR"
    assert response.body["retryable"] is False
    assert response.body["details"]["reason"] == "provider_misconfigured"


@pytest.mark.asyncio
async def test_llm_repair_accepted(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """A repaired graph with fewer violations replaces the draft."""
    mock_adapter.draft_graph.return_value = DraftGraphResult(graph=droppable_status_quo_payload)
    mock_adapter.repair_graph.return_value = DraftGraphResult(
        graph=_drop_status_quo(droppable_status_quo_payload)
    )

    response = await orchestrator.run(_request())

    assert response.status_code == 200
    node_ids = {n["id"] for n in response.body["graph"]["nodes"]}
    assert "opt_status_quo" not in node_ids
    repair_trace = response.body["trace"]["pipeline"]["repair_trace"]
    assert repair_trace["llm_repair"]["accepted"] is True
    assert "post_llm_sweep" in repair_trace
    feedback = mock_adapter.repair_graph.await_args.args[1]
    assert "[NO_PATH_TO_GOAL]" in feedback


# --- offline repair ---


@pytest.mark.asyncio
async def test_run_graph_skips_model(
    orchestrator: PipelineOrchestrator,
    mock_adapter: MagicMock,
    droppable_status_quo_payload: dict[str, Any],
) -> None:
    """Repairing an existing graph never calls the model."""
    response = await orchestrator.run_graph(
        DraftRequest(brief="Pricing decision"), droppable_status_quo_payload
    )

    assert response.status_code == 200
    assert response.body["trace"]["engine"] == {"provider": "none", "model": "none"}
    assert "draft" not in response.body["trace"]["pipeline"]["stage_timings"]
    summary = response.body["trace"]["pipeline"]["repair_summary"]
    assert summary["status_quo_action"] == "droppable"
    codes = [w["code"] for w in response.body["structural_warnings"]]
    assert "LLM_REPAIR_SKIPPED" in codes
    mock_adapter.draft_graph.assert_not_awaited()
    mock_adapter.repair_graph.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_graph_malformed(orchestrator: PipelineOrchestrator) -> None:
    """Offline repair applies the same shape gate."""
    response = await orchestrator.run_graph(DraftRequest(brief=""), {"nodes": "oops"})

    assert response.status_code == 400
    assert response.body["details"]["reason"] == "malformed_graph"
