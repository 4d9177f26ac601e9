"""Step declarations: YAML loader and bundled default pipelines."""

from warrant.steps.loader import DEFAULT_PIPELINE, StepsConfig, StepsYAMLLoader

__all__ = ["DEFAULT_PIPELINE", "StepsConfig", "StepsYAMLLoader"]
