"""
Documents exchanged between the rules engine and service workers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.schema_template import TemplatePointer


class TriggerMode(str, Enum):
    """Which list events trigger a work item."""
    NEW = "new"
    CHANGE = "change"


class Document(BaseModel):
    """Base for documents persisted in the store."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the store."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Link(Document):
    """Reference to a persisted document."""
    id: str
    rev: int = 0


class ActionDescription(Document):
    """Published description of an action a service implements."""
    name: str
    service: str
    type: Union[str, List[str]]
    description: str
    params: Optional[Dict[str, Any]] = None
    uischema: Optional[Dict[str, Any]] = None


class ConditionDescription(Document):
    """Published description of a condition."""
    name: str
    service: Optional[str] = None
    type: Union[str, List[str]]
    description: str
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    params: Optional[Dict[str, Any]] = None
    pointers: Optional[Dict[str, TemplatePointer]] = None
    uischema: Optional[Dict[str, Any]] = None


class ActionBinding(Document):
    """Action chosen by a rule, with its option values."""
    action: Link
    options: Optional[Dict[str, Any]] = None


class ConditionBinding(Document):
    """Condition chosen by a rule, with its option values."""
    condition: Link
    options: Optional[Dict[str, Any]] = None


class ConfiguredRule(Document):
    """Persisted rule; ``enabled`` is the flag work runners follow."""
    services: List[str] = Field(default_factory=list)
    enabled: bool = True
    type: str
    path: str
    on: TriggerMode = TriggerMode.NEW
    actions: Dict[str, ActionBinding] = Field(default_factory=dict)
    conditions: Dict[str, ConditionBinding] = Field(default_factory=dict)


class Work(Document):
    """Compiled unit of work: one action, one merged filter, one list."""
    type: str
    service: str
    action: str
    options: Dict[str, Any] = Field(default_factory=dict)
    path: str
    on: TriggerMode = TriggerMode.NEW
    schema_: Dict[str, Any] = Field(default_factory=dict, alias="schema")
    rule: Link = Field(default_factory=lambda: Link(id=""))
