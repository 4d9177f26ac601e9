"""
Tests for StepsYAMLLoader.

Covers the bundled Cargo pipeline, camelCase/snake_case keys, defaults
merging, project lookup and rejection of invalid declarations.
"""

import pytest
import yaml

from warrant.pipeline.domain.enums import Severity
from warrant.shared.domain.exceptions import ConfigurationError, CyclicDependency, InvalidRetryPolicy
from warrant.steps.loader import DEFAULT_PIPELINE, StepsYAMLLoader


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(content), encoding="utf-8")
    return path


class TestDefaultPipeline:
    """Test the bundled Cargo pipeline."""

    def test_loads_and_validates(self):
        config = StepsYAMLLoader.load_default()
        registry = config.build_registry()

        assert config.source == str(DEFAULT_PIPELINE)
        assert registry.step_ids[:3] == ["env", "build", "unit_tests"]
        assert registry.get("build").depends_on == ("env",)
        assert registry.get("lint").severity is Severity.ADVISORY
        assert registry.get("env").timeout == 30
        assert registry.get("build").timeout == 600

    def test_audit_is_retried(self):
        audit = StepsYAMLLoader.load_default().build_registry().get("security_audit")

        assert audit.idempotent is True
        assert audit.retry_policy.max_attempts == 3
        assert audit.retry_policy.initial_delay == 2

    def test_scopes(self):
        scopes = StepsYAMLLoader.load_default().scopes

        assert scopes["tests"] == ["unit_tests"]
        assert scopes["security"] == ["security_audit"]


class TestParse:
    """Test parsing of declarations."""

    def test_camel_and_snake_keys(self):
        config = StepsYAMLLoader.parse({
            "steps": [
                {"id": "build", "command": "make"},
                {"id": "test", "command": ["make", "test"], "dependsOn": ["build"]},
                {"id": "docs", "command": "make docs", "depends_on": "build", "severity": "advisory"},
            ],
        })

        assert [s.id for s in config.steps] == ["build", "test", "docs"]
        assert config.steps[1].depends_on == ("build",)
        assert config.steps[2].depends_on == ("build",)
        assert config.steps[2].severity is Severity.ADVISORY

    def test_defaults_merged(self):
        config = StepsYAMLLoader.parse({
            "defaults": {"timeout": 90, "severity": "advisory"},
            "steps": [{"id": "lint", "command": "ruff ."}, {"id": "test", "command": "pytest", "severity": "critical"}],
        })

        assert config.steps[0].timeout == 90
        assert config.steps[0].severity is Severity.ADVISORY
        assert config.steps[1].severity is Severity.CRITICAL

    def test_env_names_preserved(self):
        config = StepsYAMLLoader.parse({
            "steps": [{"id": "build", "command": "cargo build", "env": {"RUSTFLAGS": "-D warnings", "CARGO_TERM_COLOR": "never"}}],
        })

        assert config.steps[0].env == {"RUSTFLAGS": "-D warnings", "CARGO_TERM_COLOR": "never"}

    def test_forward_references(self):
        config = StepsYAMLLoader.parse({
            "steps": [{"id": "test", "command": "pytest", "dependsOn": ["build"]}, {"id": "build", "command": "make"}],
        })

        assert config.build_registry().topological_order() == ["build", "test"]

    @pytest.mark.parametrize("data", [
        None,
        [],
        {"steps": []},
        {"steps": "build"},
        {"steps": ["make"]},
        {"steps": [{"id": "build"}]},
        {"steps": [{"command": "make"}]},
        {"steps": [{"id": "build", "command": "make", "severity": "fatal"}]},
        {"steps": [{"id": "build", "command": "make", "colour": "red"}]},
        {"steps": [{"id": "build", "command": "make", "retry": {"maxAttempts": 0}}]},
        {"steps": [{"id": "build", "command": "make", "retry": {"attempts": 3}}]},
        {"steps": [{"id": "build", "command": "make", "timeout": "soon"}]},
        {"steps": [{"id": "build", "command": "make", "env": ["A=1"]}]},
        {"defaults": ["x"], "steps": [{"id": "build", "command": "make"}]},
        {"scopes": ["tests"], "steps": [{"id": "build", "command": "make"}]},
        {"scopes": {"tests": 3}, "steps": [{"id": "build", "command": "make"}]},
    ])
    def test_invalid_declarations(self, data):
        with pytest.raises(ConfigurationError):
            StepsYAMLLoader.parse(data, source="steps.yaml")

    def test_retry_requires_idempotent(self):
        config = StepsYAMLLoader.parse({
            "steps": [{"id": "audit", "command": "cargo audit", "retry": {"maxAttempts": 3}}],
        })

        with pytest.raises(InvalidRetryPolicy):
            config.build_registry()

    def test_cycle_detected(self):
        config = StepsYAMLLoader.parse({
            "steps": [
                {"id": "a", "command": "true", "dependsOn": ["b"]},
                {"id": "b", "command": "true", "dependsOn": ["a"]},
            ],
        })

        with pytest.raises(CyclicDependency):
            config.build_registry()


class TestFiles:
    """Test file lookup."""

    def test_project_file_preferred(self, tmp_path):
        _write(tmp_path / ".warrant" / "steps.yaml", {"steps": [{"id": "check", "command": "make check"}]})

        config = StepsYAMLLoader.load_for_project(tmp_path)

        assert [s.id for s in config.steps] == ["check"]

    def test_explicit_file_wins(self, tmp_path):
        _write(tmp_path / ".warrant" / "steps.yaml", {"steps": [{"id": "check", "command": "make check"}]})
        explicit = _write(tmp_path / "ci.yaml", {"steps": [{"id": "ci", "command": "make ci"}]})

        config = StepsYAMLLoader.load_for_project(tmp_path, explicit)

        assert [s.id for s in config.steps] == ["ci"]
        assert config.source == str(explicit)

    def test_falls_back_to_default(self, tmp_path):
        config = StepsYAMLLoader.load_for_project(tmp_path)

        assert config.source == str(DEFAULT_PIPELINE)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            StepsYAMLLoader.load_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "steps.yaml"
        path.write_text("steps: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            StepsYAMLLoader.load_from_file(path)
