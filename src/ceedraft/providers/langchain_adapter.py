"""Draft adapter backed by a LangChain chat model.

The adapter sends a system prompt plus the brief, expects a JSON object
with ``nodes``, ``edges`` and optional ``rationales``, and maps every
provider failure onto the upstream error types. Timeouts and client
aborts around the call are enforced by the pipeline.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

import httpx
from langchain_core.messages import HumanMessage, SystemMessage

from ceedraft.observability.logging import get_logger
from ceedraft.providers.base import (
    DraftGraphResult,
    UpstreamHTTPError,
    UpstreamNonJsonError,
    UpstreamTimeoutError,
    Usage,
)

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage

    from ceedraft.providers.base import CallOpts, DraftGraphArgs

log = get_logger(__name__)

PROMPT_VERSION = "draft-v3"

DRAFT_SYSTEM_PROMPT = """\
You turn a decision problem into a causal decision graph.

Return ONLY a JSON object with keys "nodes", "edges" and "rationales".
Node kinds: goal, decision, option, factor, outcome, risk.
Edges follow decision -> option -> factor -> outcome|risk -> goal.
Every edge has strength_mean (signed), strength_std, belief_exists in [0, 1]
and effect_direction ("positive" or "negative").
Options carry data.interventions mapping factor IDs to the value they set.
Use ID prefixes dec_, opt_, fac_, out_, risk_ and goal_.
"""

REPAIR_SYSTEM_PROMPT = """\
You fix structural problems in a causal decision graph.

Return ONLY the corrected JSON object with keys "nodes" and "edges".
"""

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _extract_json(content: Any, provider: str) -> dict[str, Any]:
    text = content if isinstance(content, str) else json.dumps(content)
    text = text.strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise UpstreamNonJsonError(provider, text) from e
    if not isinstance(parsed, dict):
        raise UpstreamNonJsonError(provider, text)
    return parsed


def _caused_by_timeout(exc: BaseException) -> bool:
    """True when ``exc`` or anything in its cause chain is a timeout."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, (httpx.TimeoutException, TimeoutError)):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def _usage(message: BaseMessage) -> Usage:
    metadata = getattr(message, "usage_metadata", None) or {}
    details = metadata.get("input_token_details") or {}
    return Usage(
        input_tokens=int(metadata.get("input_tokens", 0)),
        output_tokens=int(metadata.get("output_tokens", 0)),
        cache_read_input_tokens=int(details.get("cache_read", 0)),
    )


class LangChainDraftAdapter:
    """``RepairAdapter`` over a LangChain ``BaseChatModel``."""

    def __init__(
        self,
        chat_model: BaseChatModel,
        *,
        provider: str,
        model: str,
        prompt_version: str = PROMPT_VERSION,
    ) -> None:
        self.chat_model = chat_model
        self.provider = provider
        self.model = model
        self.prompt_version = prompt_version

    async def _invoke(self, messages: list[BaseMessage], opts: CallOpts) -> BaseMessage:
        if opts.aborted:
            raise UpstreamTimeoutError(self.provider, "pre_aborted")
        try:
            return await self.chat_model.ainvoke(messages)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(self.provider, "body") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamHTTPError(self.provider, e.response.status_code, str(e)) from e
        except httpx.TransportError as e:
            raise UpstreamHTTPError(self.provider, 502, f"transport error: {e}") from e
        except Exception as e:
            # Provider SDKs wrap httpx errors in their own exception types.
            status = getattr(e, "status_code", None)
            if isinstance(status, int):
                raise UpstreamHTTPError(self.provider, status, str(e)) from e
            if _caused_by_timeout(e):
                raise UpstreamTimeoutError(self.provider, "body") from e
            log.warning(
                "provider_call_failed",
                provider=self.provider,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise UpstreamHTTPError(self.provider, 502, f"{type(e).__name__}: {e}") from e

    def _result(self, message: BaseMessage) -> DraftGraphResult:
        payload = _extract_json(message.content, self.provider)
        rationales = payload.pop("rationales", [])
        return DraftGraphResult(
            graph=payload,
            rationales=rationales if isinstance(rationales, list) else [rationales],
            usage=_usage(message),
            meta={
                "prompt_version": self.prompt_version,
                "prompt_source": "default",
                "model": self.model,
            },
        )

    async def draft_graph(self, args: DraftGraphArgs, opts: CallOpts) -> DraftGraphResult:
        parts = [f"Decision brief:\n{args.brief}"]
        if args.previous_graph is not None:
            parts.append(
                "Refine this existing graph:\n" + json.dumps(args.previous_graph, sort_keys=True)
            )
        if args.flags:
            parts.append("Flags: " + json.dumps(args.flags, sort_keys=True))
        messages: list[BaseMessage] = [
            SystemMessage(content=DRAFT_SYSTEM_PROMPT),
            HumanMessage(content="\n\n".join(parts)),
        ]
        log.debug("draft_call", provider=self.provider, model=self.model, request_id=opts.request_id)
        return self._result(await self._invoke(messages, opts))

    async def repair_graph(
        self, graph: dict[str, Any], feedback: str, opts: CallOpts
    ) -> DraftGraphResult:
        messages: list[BaseMessage] = [
            SystemMessage(content=REPAIR_SYSTEM_PROMPT),
            HumanMessage(content=f"{feedback}\n\nGraph:\n{json.dumps(graph, sort_keys=True)}"),
        ]
        log.debug("repair_call", provider=self.provider, model=self.model, request_id=opts.request_id)
        return self._result(await self._invoke(messages, opts))
