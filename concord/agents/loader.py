"""Fleet loader: parses fleet YAML into a validated FleetSpec."""

import re
from pathlib import Path
from typing import Any

import structlog
import yaml

from concord.config import Settings, get_settings
from concord.core.exceptions import ConfigurationError
from concord.core.fleet_models import FleetSpec

logger = structlog.get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Keys copied from an agent's inline spec or config file onto its assignment
_AGENT_SPEC_KEYS = ("model", "instructions", "temperature", "output_format", "timeout_seconds")


def to_snake(key: str) -> str:
    """Convert a camelCase or kebab-case key to snake_case."""
    return _CAMEL_BOUNDARY.sub("_", key).replace("-", "_").lower()


def _normalize(data: dict[str, Any] | None) -> dict[str, Any]:
    """Snake-case the keys of one mapping level."""
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping, got {type(data).__name__}")
    return {to_snake(str(k)): v for k, v in data.items()}


class FleetLoader:
    """
    Loads fleet definitions from YAML.

    Handles:
    - apiVersion/kind/metadata/spec documents
    - camelCase or snake_case keys
    - agent config files resolved relative to the fleet file
    - consensus defaults from settings for omitted values
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def load(self, path: str | Path) -> FleetSpec:
        """Load and validate a fleet file."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read fleet file: {e}",
                details={"path": str(path)},
            ) from e

        return self.from_yaml(text, base_dir=path.parent)

    def from_yaml(self, text: str, base_dir: Path | None = None) -> FleetSpec:
        """Parse and validate fleet YAML text."""
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse fleet YAML: {e}") from e

        if not isinstance(document, dict):
            raise ConfigurationError("Fleet YAML must be a mapping")

        return self.from_dict(document, base_dir=base_dir)

    def from_dict(self, document: dict[str, Any], base_dir: Path | None = None) -> FleetSpec:
        """Build a FleetSpec from an already-parsed fleet document."""
        document = _normalize(document)
        metadata = _normalize(document.get("metadata"))
        spec = _normalize(document.get("spec"))

        name = metadata.get("name")
        if not name:
            raise ConfigurationError("Fleet metadata.name is required")

        raw_agents = spec.get("agents") or []
        if not isinstance(raw_agents, list):
            raise ConfigurationError("spec.agents must be a list")

        data = {
            "name": name,
            "api_version": document.get("api_version", "concord.dev/v1"),
            "kind": document.get("kind", "AgentFleet"),
            "labels": metadata.get("labels") or {},
            "agents": [self._parse_agent(a, base_dir) for a in raw_agents],
            "coordination": self._parse_coordination(spec.get("coordination")),
        }

        fleet = FleetSpec.create(data)
        logger.info(
            "fleet_loaded",
            fleet=fleet.name,
            agents=len(fleet.agents),
            tiers=fleet.tiers(),
            final_aggregation=fleet.coordination.final_aggregation.value,
        )
        return fleet

    def _parse_agent(self, raw: dict[str, Any], base_dir: Path | None) -> dict[str, Any]:
        """Flatten one agent entry into AgentAssignment fields."""
        agent = _normalize(raw)
        name = agent.get("name")
        if not name:
            raise ConfigurationError("Every agent needs a name")

        assignment: dict[str, Any] = {
            "name": name,
            "tier": agent.get("tier") if agent.get("tier") is not None else 1,
            "weight": agent.get("weight"),
            "role": agent.get("role", "worker"),
            "labels": agent.get("labels") or {},
        }

        config_path = agent.get("config")
        if config_path:
            assignment["config_path"] = str(config_path)
            assignment.update(self._load_agent_config(name, config_path, base_dir))

        inline = _normalize(agent.get("spec"))
        if "system_prompt" in inline and "instructions" not in inline:
            inline["instructions"] = inline["system_prompt"]
        assignment.update({k: inline[k] for k in _AGENT_SPEC_KEYS if k in inline})

        for key in ("timeout_seconds", "output_format"):
            if key in agent:
                assignment[key] = agent[key]

        return assignment

    def _load_agent_config(
        self,
        name: str,
        config_path: str,
        base_dir: Path | None,
    ) -> dict[str, Any]:
        """Load model and instructions from an agent config file."""
        path = Path(config_path)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = _normalize(yaml.safe_load(f))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load config for agent '{name}': {e}",
                details={"path": str(path)},
            ) from e

        # Agent files may be full documents with their own spec block
        if "spec" in data and isinstance(data["spec"], dict):
            data = {**data, **_normalize(data["spec"])}
        if "system_prompt" in data and "instructions" not in data:
            data["instructions"] = data["system_prompt"]

        return {k: data[k] for k in _AGENT_SPEC_KEYS if k in data}

    def _parse_consensus(
        self,
        raw: dict[str, Any] | None,
        base: dict[str, Any],
    ) -> dict[str, Any]:
        """Overlay a consensus block on its base values."""
        consensus = _normalize(raw)
        merged = dict(base)
        for key in ("algorithm", "min_votes", "min_confidence", "timeout_seconds", "weights"):
            if consensus.get(key) is not None:
                merged[key] = consensus[key]
        if consensus.get("timeout_ms") is not None and "timeout_seconds" not in consensus:
            merged["timeout_seconds"] = float(consensus["timeout_ms"]) / 1000
        return merged

    def _parse_coordination(self, raw: dict[str, Any] | None) -> dict[str, Any]:
        """Build CoordinationConfig fields from the coordination block."""
        coordination = _normalize(raw)
        tiered = _normalize(coordination.get("tiered"))
        defaults = self._settings.consensus

        default_consensus = self._parse_consensus(
            coordination.get("consensus"),
            {
                "algorithm": defaults.algorithm,
                "min_votes": defaults.min_votes,
                "min_confidence": defaults.min_confidence,
            },
        )

        raw_tiers = tiered.get("tier_consensus") or {}
        if not isinstance(raw_tiers, dict):
            raise ConfigurationError("tiered.tier_consensus must be a mapping")

        tier_consensus: dict[int, dict[str, Any]] = {}
        for tier, block in raw_tiers.items():
            try:
                number = int(tier)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid tier number in tier_consensus: {tier!r}")
            # Tier overrides inherit whatever they leave out from the fleet default
            tier_consensus[number] = self._parse_consensus(block, default_consensus)

        result: dict[str, Any] = {
            "mode": coordination.get("mode", "tiered"),
            "default_consensus": default_consensus,
            "tier_consensus": tier_consensus,
        }
        if coordination.get("manager"):
            result["manager"] = coordination["manager"]
        for key in (
            "pass_all_results",
            "final_aggregation",
            "allow_tier_gaps",
            "abort_on_tier_failure",
        ):
            if tiered.get(key) is not None:
                result[key] = tiered[key]
        return result
