"""Tests for response provenance."""

from __future__ import annotations

from ceedraft import __version__
from ceedraft.pipeline.provenance import assemble_provenance, derive_prompt_source
from ceedraft.providers.selection import ModelSelection, SelectionSource


class TestDerivePromptSource:
    """Tests for prompt source precedence."""

    def test_env_override_wins(self) -> None:
        source = derive_prompt_source(
            {"prompt_source": "store"}, {"CEE_DRAFT_PROMPT_VERSION": "v9"}
        )
        assert source == "env_override"

    def test_store(self) -> None:
        assert derive_prompt_source({"prompt_source": "store"}, {}) == "supabase"

    def test_defaults(self) -> None:
        assert derive_prompt_source({}, {}) == "defaults"


class TestAssembleProvenance:
    """Tests for assemble_provenance."""

    def test_unknown_build_info(self) -> None:
        provenance = assemble_provenance({}, None, env={})
        data = provenance.to_dict()
        assert data["version"] == __version__
        assert data["commit"] == "unknown"
        assert data["build_timestamp"] == "unknown"
        assert data["pipeline_path"] == "staged"
        assert data["engine_base_url_configured"] is False
        assert "model" not in data
        assert "prompt_store_version" not in data

    def test_full_environment(self) -> None:
        env = {
            "CEE_GIT_COMMIT": "abc123",
            "CEE_BUILD_TIMESTAMP": "2026-01-01T00:00:00Z",
            "CEE_DRAFT_PROMPT_VERSION": "v7",
            "ENGINE_BASE_URL": "http://engine",
        }
        selection = ModelSelection("openai", "gpt-4o", SelectionSource.ENV)
        provenance = assemble_provenance({"prompt_version": "v3"}, selection, env=env)
        assert provenance.commit == "abc123"
        assert provenance.prompt_version == "v7"
        assert provenance.prompt_override_active
        assert provenance.model == "gpt-4o"
        assert provenance.model_override_active
        assert provenance.engine_base_url_configured

    def test_adapter_metadata(self) -> None:
        selection = ModelSelection("openai", "gpt-4o", SelectionSource.DEFAULT)
        provenance = assemble_provenance(
            {
                "model": "gpt-4o-2024",
                "prompt_version": "v3",
                "prompt_source": "store",
                "prompt_store_version": 12,
            },
            selection,
            env={},
        )
        assert provenance.model == "gpt-4o-2024"
        assert provenance.prompt_version == "v3"
        assert provenance.prompt_source == "supabase"
        assert provenance.prompt_store_version == 12
        assert not provenance.model_override_active
