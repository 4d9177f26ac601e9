"""
Step declarations loader.

Reads steps.yaml files (camelCase or snake_case keys) into Steps, the claim
scope mapping and run defaults. Falls back to the bundled Cargo pipeline.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from warrant.pipeline.application.registry import StepRegistry
from warrant.pipeline.domain.enums import Severity
from warrant.pipeline.domain.models import Step
from warrant.shared.domain.base_model import to_snake_case
from warrant.shared.domain.exceptions import ConfigurationError
from warrant.shared.infrastructure.logging import get_logger
from warrant.shared.infrastructure.resilience.retry import NO_RETRY, RetryPolicy

logger = get_logger(__name__)

DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_PIPELINE = DEFAULTS_DIR / "rust.yaml"

_STEP_KEYS = {
    "id", "command", "depends_on", "timeout", "retry", "severity",
    "idempotent", "description", "cwd", "env",
}
_RETRY_KEYS = {"max_attempts", "initial_delay", "max_delay", "exponential_base", "retry_on_timeout"}


def _snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert one level of camelCase keys to snake_case; env and scope names are left alone."""
    return {to_snake_case(str(key)): value for key, value in data.items()}


@dataclass
class StepsConfig:
    """Parsed step declarations file."""

    steps: List[Step]
    scopes: Dict[str, List[str]] = field(default_factory=dict)
    source: Optional[str] = None

    def build_registry(self) -> StepRegistry:
        """Validated registry; declarations may reference steps declared later."""
        registry = StepRegistry.from_steps(self.steps, validate=False)
        registry.validate()
        return registry


class StepsYAMLLoader:
    """Loads step declarations from YAML."""

    @staticmethod
    def load_from_file(path: Path) -> StepsConfig:
        """
        Raises:
            ConfigurationError: unreadable file, invalid YAML or invalid declarations
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read steps file {path}: {e}", {"path": str(path)}) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", {"path": str(path)}) from e

        config = StepsYAMLLoader.parse(data, source=str(path))
        logger.info("steps_loaded", path=str(path), steps=len(config.steps), scopes=len(config.scopes))
        return config

    @staticmethod
    def load_default() -> StepsConfig:
        return StepsYAMLLoader.load_from_file(DEFAULT_PIPELINE)

    @staticmethod
    def load_for_project(project_root: Path, steps_file: Optional[Path] = None,
                         warrant_dir: str = ".warrant", file_name: str = "steps.yaml") -> StepsConfig:
        """Explicit file, else <project>/.warrant/steps.yaml, else the bundled default."""
        if steps_file is not None:
            return StepsYAMLLoader.load_from_file(steps_file)
        project_file = project_root / warrant_dir / file_name
        if project_file.exists():
            return StepsYAMLLoader.load_from_file(project_file)
        logger.info("using_default_steps", path=str(DEFAULT_PIPELINE))
        return StepsYAMLLoader.load_default()

    @staticmethod
    def parse(data: Any, source: Optional[str] = None) -> StepsConfig:
        if not isinstance(data, dict):
            raise ConfigurationError(f"Steps file {source} must contain a mapping", {"path": source})
        data = _snake_keys(data)

        defaults = data.get("defaults") or {}
        if not isinstance(defaults, dict):
            raise ConfigurationError("'defaults' must be a mapping", {"path": source})
        defaults = _snake_keys(defaults)

        raw_steps = data.get("steps")
        if not isinstance(raw_steps, list) or not raw_steps:
            raise ConfigurationError(f"Steps file {source} declares no steps", {"path": source})

        steps = [StepsYAMLLoader._parse_step(raw, defaults, source) for raw in raw_steps]

        raw_scopes = data.get("scopes") or {}
        if not isinstance(raw_scopes, dict):
            raise ConfigurationError("'scopes' must be a mapping", {"path": source})
        scopes: Dict[str, List[str]] = {}
        for scope, step_ids in raw_scopes.items():
            if isinstance(step_ids, str):
                step_ids = [step_ids]
            if not isinstance(step_ids, list):
                raise ConfigurationError(f"Scope '{scope}' must map to a list of step ids", {"path": source})
            scopes[str(scope)] = [str(step_id) for step_id in step_ids]

        return StepsConfig(steps=steps, scopes=scopes, source=source)

    @staticmethod
    def _parse_step(raw: Any, defaults: Dict[str, Any], source: Optional[str]) -> Step:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Step declarations must be mappings (in {source})", {"path": source})
        merged = {**defaults, **_snake_keys(raw)}
        step_id = merged.get("id")

        unknown = set(merged) - _STEP_KEYS
        if unknown:
            raise ConfigurationError(
                f"Step '{step_id}' has unknown keys: {', '.join(sorted(unknown))}",
                {"path": source, "step_id": step_id},
            )
        if not step_id or "command" not in merged:
            raise ConfigurationError(f"Every step needs an 'id' and a 'command' (in {source})", {"path": source})

        try:
            severity = Severity[str(merged.get("severity", "critical")).upper()]
        except KeyError as e:
            raise ConfigurationError(
                f"Step '{step_id}' has unknown severity '{merged.get('severity')}'",
                {"path": source, "step_id": step_id},
            ) from e

        retry = merged.get("retry")
        try:
            if retry:
                if not isinstance(retry, dict):
                    raise ValueError("retry must be a mapping")
                retry = _snake_keys(retry)
                unknown_retry = set(retry) - _RETRY_KEYS
                if unknown_retry:
                    raise ValueError(f"unknown retry keys: {', '.join(sorted(unknown_retry))}")
                retry_policy = RetryPolicy(**retry)
            else:
                retry_policy = NO_RETRY
            depends_on = merged.get("depends_on") or []
            if isinstance(depends_on, str):
                depends_on = [depends_on]
            env = {str(k): str(v) for k, v in (merged.get("env") or {}).items()}
            return Step(
                id=str(step_id),
                command=merged["command"],
                depends_on=tuple(str(d) for d in depends_on),
                timeout=float(merged["timeout"]) if merged.get("timeout") is not None else None,
                retry_policy=retry_policy,
                severity=severity,
                idempotent=bool(merged.get("idempotent", False)),
                description=str(merged.get("description", "")),
                cwd=str(merged["cwd"]) if merged.get("cwd") else None,
                env=env,
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid step '{step_id}': {e}", {"path": source, "step_id": step_id}) from e
