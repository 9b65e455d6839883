"""
Request and response models for the Rules Engine.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from shared.models import ActionDescription, ConditionDescription, Document, Link, TriggerMode, Work


class ActionInstance(ActionDescription):
    """An action picked for a rule, with the options chosen for it."""
    id: Optional[str] = None
    rev: Optional[int] = None
    options: Optional[Dict[str, Any]] = None

    def link(self) -> Link:
        return Link(id=self.id or "", rev=self.rev or 0)


class ConditionInstance(ConditionDescription):
    """A condition picked for a rule, with the options chosen for it."""
    id: Optional[str] = None
    rev: Optional[int] = None
    options: Optional[Dict[str, Any]] = None

    def link(self) -> Link:
        return Link(id=self.id or "", rev=self.rev or 0)


class RuleInput(Document):
    """Rule as submitted for registration."""
    type: str
    path: str
    on: TriggerMode = TriggerMode.NEW
    conditions: List[ConditionInstance] = Field(default_factory=list)
    actions: List[ActionInstance] = Field(default_factory=list)


class RegisteredRule(BaseModel):
    """Outcome of a successful registration."""
    id: str
    rule: Link
    services: List[str]
    work: List[Link] = Field(default_factory=list)


class CompileResponse(BaseModel):
    """Dry-run compilation result."""
    work: List[Dict[str, Any]]

    @classmethod
    def from_work(cls, work: List[Work]) -> "CompileResponse":
        return cls(work=[item.to_document() for item in work])
