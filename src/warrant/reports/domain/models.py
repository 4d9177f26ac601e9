"""Report domain models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from warrant.pipeline.domain.enums import Severity
from warrant.shared.domain.base_model import BaseDomainModel


class IssueKind(Enum):
    """What an issue was derived from."""

    STEP = "step"  # A step that did not pass
    CLAIM = "claim"  # A contradicted narrative claim


@dataclass(frozen=True)
class Issue(BaseDomainModel):
    """One numbered entry of the "Issues Found" section."""

    number: int
    kind: IssueKind
    severity: Severity
    title: str
    detail: str
    impact: str
    recommendation: str
    step_id: Optional[str] = None
