"""
Step registry.

Holds the declared steps, their dependency DAG and the scheduling
primitive the executor polls.
"""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set

from warrant.pipeline.domain.enums import Severity
from warrant.pipeline.domain.models import Step
from warrant.shared.domain.exceptions import (
    CyclicDependency,
    DuplicateStepId,
    InvalidDependency,
    InvalidRetryPolicy,
)
from warrant.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class StepRegistry:
    """Ordered collection of steps forming a dependency DAG."""

    def __init__(self) -> None:
        self._steps: Dict[str, Step] = {}

    @classmethod
    def from_steps(cls, steps: Iterable[Step], validate: bool = True) -> "StepRegistry":
        """
        Build a registry from declarations.

        With validate=False, dependencies may point forward (or nowhere);
        validate() must then be called before the registry is used.
        """
        registry = cls()
        for step in steps:
            registry._add(step, check_dependencies=validate)
        if validate:
            registry.validate()
        return registry

    def register(self, step: Step) -> None:
        """
        Add a step.

        Raises:
            DuplicateStepId: the id is already registered
            InvalidDependency: depends_on names a step that is not registered
            InvalidRetryPolicy: retries declared on a non-idempotent step
        """
        self._add(step, check_dependencies=True)

    def _add(self, step: Step, check_dependencies: bool) -> None:
        if step.id in self._steps:
            raise DuplicateStepId(step.id)
        if check_dependencies:
            for dependency in step.depends_on:
                if dependency not in self._steps:
                    raise InvalidDependency(step.id, dependency)
        if step.retry_policy.retries_enabled and not step.idempotent:
            raise InvalidRetryPolicy(step.id, step.retry_policy.max_attempts)
        self._steps[step.id] = step
        logger.debug("step_registered", step_id=step.id, depends_on=list(step.depends_on))

    def validate(self) -> None:
        """
        Check the whole graph before a run.

        Raises:
            InvalidDependency: a dependency names an unknown step
            CyclicDependency: the graph has a cycle (carries the cycle path)
        """
        for step in self._steps.values():
            for dependency in step.depends_on:
                if dependency not in self._steps:
                    raise InvalidDependency(step.id, dependency)

        color = {step_id: _WHITE for step_id in self._steps}
        path: List[str] = []

        def visit(step_id: str) -> None:
            color[step_id] = _GREY
            path.append(step_id)
            for dependency in self._steps[step_id].depends_on:
                if color[dependency] == _GREY:
                    cycle = path[path.index(dependency):] + [dependency]
                    raise CyclicDependency(cycle)
                if color[dependency] == _WHITE:
                    visit(dependency)
            path.pop()
            color[step_id] = _BLACK

        for step_id in self._steps:
            if color[step_id] == _WHITE:
                visit(step_id)

    def ready_queue(self, completed: Set[str], started: Optional[Set[str]] = None) -> List[Step]:
        """
        Steps whose dependencies are all in `completed` and which have not
        started yet, in declaration order.

        `started` defaults to `completed`.
        """
        started = completed if started is None else started
        return [
            step
            for step in self._steps.values()
            if step.id not in started and set(step.depends_on) <= completed
        ]

    @property
    def steps(self) -> List[Step]:
        """Steps in declaration order."""
        return list(self._steps.values())

    @property
    def step_ids(self) -> List[str]:
        return list(self._steps)

    def get(self, step_id: str) -> Step:
        return self._steps[step_id]

    def index_of(self, step_id: str) -> int:
        return self.step_ids.index(step_id)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self):
        return iter(self._steps.values())

    def dependents_of(self, step_id: str) -> List[str]:
        """All steps that transitively depend on `step_id`, in declaration order."""
        found: Set[str] = set()
        frontier = [step_id]
        while frontier:
            current = frontier.pop()
            for step in self._steps.values():
                if current in step.depends_on and step.id not in found:
                    found.add(step.id)
                    frontier.append(step.id)
        return [sid for sid in self._steps if sid in found]

    def topological_order(self) -> List[str]:
        """A dependency-respecting order, stable with respect to declaration order."""
        self.validate()
        done: Set[str] = set()
        order: List[str] = []
        while len(order) < len(self._steps):
            for step in self.ready_queue(done):
                order.append(step.id)
                done.add(step.id)
        return order

    def promoted(self) -> "StepRegistry":
        """Copy of this registry with every ADVISORY step promoted to CRITICAL."""
        promoted = StepRegistry()
        for step in self._steps.values():
            if step.severity is Severity.ADVISORY:
                step = replace(step, severity=Severity.CRITICAL)
            promoted._steps[step.id] = step
        return promoted
