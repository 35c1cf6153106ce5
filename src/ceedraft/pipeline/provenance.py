"""Provenance block attached to every successful response."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Literal

from ceedraft import __version__

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ceedraft.providers.selection import ModelSelection

PromptSource = Literal["supabase", "defaults", "env_override"]

PROMPT_VERSION_ENV = "CEE_DRAFT_PROMPT_VERSION"
COMMIT_ENV = "CEE_GIT_COMMIT"
BUILD_TIMESTAMP_ENV = "CEE_BUILD_TIMESTAMP"
ENGINE_BASE_URL_ENV = "ENGINE_BASE_URL"

PIPELINE_PATH = "staged"


@dataclass(frozen=True)
class Provenance:
    """Which build, prompt and model produced a response."""

    version: str
    commit: str
    build_timestamp: str
    prompt_version: str | None
    prompt_source: PromptSource
    prompt_override_active: bool
    model: str | None
    model_override_active: bool
    pipeline_path: str
    engine_base_url_configured: bool
    prompt_store_version: str | int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def derive_prompt_source(llm_meta: Mapping[str, Any], env: Mapping[str, str]) -> PromptSource:
    """An env prompt-version override wins; then a store-served prompt; else defaults."""
    if env.get(PROMPT_VERSION_ENV):
        return "env_override"
    if llm_meta.get("prompt_source") == "store":
        return "supabase"
    return "defaults"


def assemble_provenance(
    llm_meta: Mapping[str, Any],
    selection: ModelSelection | None,
    env: Mapping[str, str] | None = None,
) -> Provenance:
    """Build the provenance block.

    Args:
        llm_meta: Adapter metadata from the draft call.
        selection: Resolved draft model, if any.
        env: Environment mapping; defaults to ``os.environ``.
    """
    env = os.environ if env is None else env
    source = derive_prompt_source(llm_meta, env)
    model = llm_meta.get("model")
    if model is None and selection is not None:
        model = selection.model
    return Provenance(
        version=__version__,
        commit=env.get(COMMIT_ENV, "unknown"),
        build_timestamp=env.get(BUILD_TIMESTAMP_ENV, "unknown"),
        prompt_version=env.get(PROMPT_VERSION_ENV) or llm_meta.get("prompt_version"),
        prompt_source=source,
        prompt_override_active=source == "env_override",
        model=model,
        model_override_active=selection.override_active if selection is not None else False,
        pipeline_path=PIPELINE_PATH,
        engine_base_url_configured=bool(env.get(ENGINE_BASE_URL_ENV)),
        prompt_store_version=llm_meta.get("prompt_store_version"),
    )
