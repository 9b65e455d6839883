"""
Declarations of the actions and conditions a service implements.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel

from shared.models import ActionDescription, ConditionDescription
from shared.schema_template import SchemaInputs, render_schema

# Called with the list item and the options the rule chose
ItemCallback = Callable[[Any, Dict[str, Any]], Union[Awaitable[None], None]]
SchemaFactory = Callable[[SchemaInputs], Mapping[str, Any]]


def params_schema(params: Optional[Dict[str, Any]], params_model: Optional[Type[BaseModel]]) -> Optional[Dict[str, Any]]:
    """Explicit ``params`` win over a schema derived from ``params_model``."""
    if params is not None:
        return params
    if params_model is not None:
        return params_model.model_json_schema()
    return None


@dataclass
class ActionImplementor:
    """An action this service implements."""

    name: str
    service: str
    type: Union[str, List[str]]
    description: str
    callback: ItemCallback
    params: Optional[Dict[str, Any]] = None
    params_model: Optional[Type[BaseModel]] = None
    uischema: Optional[Dict[str, Any]] = None

    def describe(self) -> ActionDescription:
        """Description published for rule authors."""
        return ActionDescription(
            name=self.name,
            service=self.service,
            type=self.type,
            description=self.description,
            params=params_schema(self.params, self.params_model),
            uischema=self.uischema
        )


@dataclass
class ConditionImplementor:
    """
    A condition this service implements.

    ``schema`` may contain placeholders (see ``shared.schema_template``) or be
    a function called with ``SchemaInputs`` that returns such a schema.
    """

    name: str
    service: str
    type: Union[str, List[str]]
    description: str
    schema: Optional[Union[Mapping[str, Any], SchemaFactory]] = None
    callback: Optional[ItemCallback] = None
    params: Optional[Dict[str, Any]] = None
    params_model: Optional[Type[BaseModel]] = None
    uischema: Optional[Dict[str, Any]] = None

    def describe(self) -> ConditionDescription:
        """Description published for rule authors, with its schema rendered."""
        schema = self.schema(SchemaInputs()) if callable(self.schema) else self.schema

        rendered_schema = None
        pointers = None
        if schema is not None:
            rendered = render_schema(schema)
            rendered_schema = rendered.schema
            pointers = rendered.pointers

        return ConditionDescription(
            name=self.name,
            service=self.service,
            type=self.type,
            description=self.description,
            schema=rendered_schema,
            params=params_schema(self.params, self.params_model),
            pointers=pointers,
            uischema=self.uischema
        )
