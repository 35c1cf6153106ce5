"""Pipeline configuration loading.

Configuration comes from three layers, later layers winning:
1. Dataclass defaults below
2. A YAML file (``load_pipeline_config``)
3. ``CEE_*`` environment variables (``PipelineConfig.with_env_overrides``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any, Literal

from ruamel.yaml import YAML

from ceedraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Mapping

log = get_logger(__name__)

MIN_TIMEOUT_MS = 5_000
MAX_TIMEOUT_MS = 300_000

DEFAULT_FALLBACK_MODEL = "openai/gpt-4o-mini"


def _parse_int(raw: str | None, fallback: int, name: str) -> int:
    """Parse an integer env value, keeping ``fallback`` on garbage input."""
    if raw is None or raw.strip() == "":
        return fallback
    try:
        value = int(raw)
    except ValueError:
        log.warning("config_env_invalid", variable=name, value=raw, using=fallback)
        return fallback
    if value <= 0:
        log.warning("config_env_invalid", variable=name, value=raw, using=fallback)
        return fallback
    return value


def _clamp_timeout(value: int) -> int:
    return max(MIN_TIMEOUT_MS, min(MAX_TIMEOUT_MS, value))


def _env_timeout(env: Mapping[str, str], name: str, fallback: int) -> int:
    """Read a timeout override, clamping only values taken from ``env``."""
    value = _parse_int(env.get(name), 0, name)
    if value == 0:
        return fallback
    return _clamp_timeout(value)


def _parse_bool(raw: str | None, fallback: bool) -> bool:
    if raw is None:
        return fallback
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return fallback


@dataclass
class BudgetConfig:
    """Wall-clock budget for one request, in milliseconds.

    Attributes:
        request_budget_ms: Whole-request deadline.
        post_processing_headroom_ms: Reserved after repair for packaging.
        repair_safety_margin_ms: Subtracted from the remaining budget
            before sizing the repair call.
        max_repair_timeout_ms: Upper bound for the model-assisted repair call.
        draft_timeout_ms: Per-attempt timeout for the draft call.
    """

    request_budget_ms: int = 90_000
    post_processing_headroom_ms: int = 10_000
    repair_safety_margin_ms: int = 2_000
    max_repair_timeout_ms: int = 20_000
    draft_timeout_ms: int = 60_000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BudgetConfig:
        defaults = cls()
        return cls(
            request_budget_ms=int(data.get("request_budget_ms", defaults.request_budget_ms)),
            post_processing_headroom_ms=int(
                data.get("post_processing_headroom_ms", defaults.post_processing_headroom_ms)
            ),
            repair_safety_margin_ms=int(
                data.get("repair_safety_margin_ms", defaults.repair_safety_margin_ms)
            ),
            max_repair_timeout_ms=int(
                data.get("max_repair_timeout_ms", defaults.max_repair_timeout_ms)
            ),
            draft_timeout_ms=int(data.get("draft_timeout_ms", defaults.draft_timeout_ms)),
        )


@dataclass
class RetryConfig:
    """Backoff for the draft call. ``max_attempts`` counts the first call."""

    max_attempts: int = 2
    base_delay_ms: float = 800.0
    factor: float = 2.0
    max_delay_ms: float = 5_000.0
    jitter_pct: float = 25.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        defaults = cls()
        return cls(
            max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
            base_delay_ms=float(data.get("base_delay_ms", defaults.base_delay_ms)),
            factor=float(data.get("factor", defaults.factor)),
            max_delay_ms=float(data.get("max_delay_ms", defaults.max_delay_ms)),
            jitter_pct=float(data.get("jitter_pct", defaults.jitter_pct)),
        )


@dataclass
class RepairConfig:
    """Deterministic repair limits and the model-assisted escalation switch."""

    max_nodes: int = 50
    max_edges: int = 200
    max_passes: int = 3
    edge_filter_mode: Literal["strict", "lenient"] = "strict"
    llm_repair_enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepairConfig:
        defaults = cls()
        mode = data.get("edge_filter_mode", defaults.edge_filter_mode)
        if mode not in ("strict", "lenient"):
            raise ValueError(f"edge_filter_mode must be 'strict' or 'lenient', got {mode!r}")
        return cls(
            max_nodes=int(data.get("max_nodes", defaults.max_nodes)),
            max_edges=int(data.get("max_edges", defaults.max_edges)),
            max_passes=int(data.get("max_passes", defaults.max_passes)),
            edge_filter_mode=mode,
            llm_repair_enabled=bool(data.get("llm_repair_enabled", defaults.llm_repair_enabled)),
        )


@dataclass
class ConfidenceConfig:
    """Clarifier banding."""

    confident_threshold: float = 0.90
    clarifier_max_rounds: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfidenceConfig:
        defaults = cls()
        return cls(
            confident_threshold=float(
                data.get("confident_threshold", defaults.confident_threshold)
            ),
            clarifier_max_rounds=int(
                data.get("clarifier_max_rounds", defaults.clarifier_max_rounds)
            ),
        )


@dataclass
class CheckpointConfig:
    """Checkpoint capture and its serialized size budget."""

    enabled: bool = True
    max_bytes: int = 3_000
    sample_size: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckpointConfig:
        defaults = cls()
        return cls(
            enabled=bool(data.get("enabled", defaults.enabled)),
            max_bytes=int(data.get("max_bytes", defaults.max_bytes)),
            sample_size=int(data.get("sample_size", defaults.sample_size)),
        )


@dataclass
class ResponseCapsConfig:
    """Independent maximum length per response list."""

    bias_findings: int = 5
    options: int = 6
    evidence_suggestions: int = 5
    sensitivity_suggestions: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseCapsConfig:
        defaults = cls()
        return cls(
            bias_findings=int(data.get("bias_findings", defaults.bias_findings)),
            options=int(data.get("options", defaults.options)),
            evidence_suggestions=int(
                data.get("evidence_suggestions", defaults.evidence_suggestions)
            ),
            sensitivity_suggestions=int(
                data.get("sensitivity_suggestions", defaults.sensitivity_suggestions)
            ),
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "bias_findings": self.bias_findings,
            "options": self.options,
            "evidence_suggestions": self.evidence_suggestions,
            "sensitivity_suggestions": self.sensitivity_suggestions,
        }


@dataclass
class CacheConfig:
    """Sizing for the injected adapter and validation caches."""

    max_size: int = 100
    ttl_seconds: float = 3_600.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheConfig:
        defaults = cls()
        return cls(
            max_size=int(data.get("max_size", defaults.max_size)),
            ttl_seconds=float(data.get("ttl_seconds", defaults.ttl_seconds)),
        )


@dataclass
class LegacyProviderConfig:
    """Single-provider block from older config files."""

    name: str
    model: str


@dataclass
class ModelsConfig:
    """Model selection inputs.

    Attributes:
        default: Default ``provider/model`` for tasks without an override.
        tasks: Per-task ``provider/model`` strings (e.g. ``draft``, ``repair``).
        legacy: Older single-provider block, used when nothing newer is set.
        fallback: Last-resort ``provider/model``.
    """

    default: str | None = None
    tasks: dict[str, str] = field(default_factory=dict)
    legacy: LegacyProviderConfig | None = None
    fallback: str = DEFAULT_FALLBACK_MODEL

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelsConfig:
        legacy_data = data.get("provider")
        legacy = None
        if isinstance(legacy_data, dict) and legacy_data.get("name") and legacy_data.get("model"):
            legacy = LegacyProviderConfig(
                name=str(legacy_data["name"]), model=str(legacy_data["model"])
            )
        return cls(
            default=data.get("default"),
            tasks={str(k): str(v) for k, v in dict(data.get("tasks", {})).items()},
            legacy=legacy,
            fallback=str(data.get("fallback", DEFAULT_FALLBACK_MODEL)),
        )


@dataclass
class CostConfig:
    """Pre-draft cost guard. Tokens are estimated as characters / 4."""

    max_brief_tokens: int = 8_000

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CostConfig:
        defaults = cls()
        return cls(max_brief_tokens=int(data.get("max_brief_tokens", defaults.max_brief_tokens)))


@dataclass
class PipelineConfig:
    """Top-level pipeline configuration."""

    budget: BudgetConfig = field(default_factory=BudgetConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    repair: RepairConfig = field(default_factory=RepairConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    checkpoints: CheckpointConfig = field(default_factory=CheckpointConfig)
    response_caps: ResponseCapsConfig = field(default_factory=ResponseCapsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    cost: CostConfig = field(default_factory=CostConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        """Create config from a dictionary; missing sections use defaults."""
        return cls(
            budget=BudgetConfig.from_dict(dict(data.get("budget", {}))),
            retry=RetryConfig.from_dict(dict(data.get("retry", {}))),
            repair=RepairConfig.from_dict(dict(data.get("repair", {}))),
            confidence=ConfidenceConfig.from_dict(dict(data.get("confidence", {}))),
            checkpoints=CheckpointConfig.from_dict(dict(data.get("checkpoints", {}))),
            response_caps=ResponseCapsConfig.from_dict(dict(data.get("response_caps", {}))),
            cache=CacheConfig.from_dict(dict(data.get("cache", {}))),
            models=ModelsConfig.from_dict(dict(data.get("models", {}))),
            cost=CostConfig.from_dict(dict(data.get("cost", {}))),
        )

    def with_env_overrides(self, env: Mapping[str, str] | None = None) -> PipelineConfig:
        """Return a copy with ``CEE_*`` environment overrides applied.

        Invalid values are logged and ignored. Timeouts read from the
        environment clamp to 5 s - 5 min; configured values are kept as is.
        """
        env = os.environ if env is None else env
        budget = replace(
            self.budget,
            request_budget_ms=_parse_int(
                env.get("CEE_REQUEST_BUDGET_MS"),
                self.budget.request_budget_ms,
                "CEE_REQUEST_BUDGET_MS",
            ),
            max_repair_timeout_ms=_env_timeout(
                env, "CEE_REPAIR_TIMEOUT_MS", self.budget.max_repair_timeout_ms
            ),
            draft_timeout_ms=_env_timeout(
                env, "CEE_DRAFT_TIMEOUT_MS", self.budget.draft_timeout_ms
            ),
        )
        repair = self.repair
        mode = env.get("CEE_EDGE_FILTER_MODE")
        if mode in ("strict", "lenient"):
            repair = replace(repair, edge_filter_mode=mode)
        elif mode:
            log.warning("config_env_invalid", variable="CEE_EDGE_FILTER_MODE", value=mode)
        checkpoints = replace(
            self.checkpoints,
            enabled=_parse_bool(env.get("CEE_CHECKPOINTS_ENABLED"), self.checkpoints.enabled),
        )
        return replace(self, budget=budget, repair=repair, checkpoints=checkpoints)


class PipelineConfigError(Exception):
    """Raised when pipeline configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load pipeline config at {path}: {reason}")


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Load pipeline configuration from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        PipelineConfig instance (environment overrides not yet applied).

    Raises:
        PipelineConfigError: If the file is missing, empty or invalid.
    """
    if not path.exists():
        raise PipelineConfigError(path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise PipelineConfigError(path, "Empty file")
        if not isinstance(data, dict):
            raise PipelineConfigError(path, "Top level must be a mapping")

        return PipelineConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, PipelineConfigError):
            raise
        raise PipelineConfigError(path, str(e)) from e
