"""Resolution context shared by every intrinsic action during one run."""

from __future__ import annotations

import logging
from typing import Any

from cfnexpand.models import Template

LOG = logging.getLogger(__name__)

NO_VALUE_PSEUDO_PARAMETER = "AWS::NoValue"
PSEUDO_PARAMETER_PREFIX = "AWS::"

# Synthetic deployment identity used until real values are supplied.
DEFAULT_ACCOUNT_ID = "123456789012"
DEFAULT_REGION = "us-east-1"
DEFAULT_STACK_NAME = "sam-app"
DEFAULT_PARTITION = "aws"
DEFAULT_URL_SUFFIX = "amazonaws.com"

DEFAULT_PSEUDO_PARAMETERS: dict[str, str] = {
    "AWS::AccountId": DEFAULT_ACCOUNT_ID,
    "AWS::Region": DEFAULT_REGION,
    "AWS::StackName": DEFAULT_STACK_NAME,
    "AWS::StackId": (
        f"arn:{DEFAULT_PARTITION}:cloudformation:{DEFAULT_REGION}:"
        f"{DEFAULT_ACCOUNT_ID}:stack/{DEFAULT_STACK_NAME}/guid"
    ),
    "AWS::URLSuffix": DEFAULT_URL_SUFFIX,
    "AWS::Partition": DEFAULT_PARTITION,
    NO_VALUE_PSEUDO_PARAMETER: "",
}


class ResolveContext:
    """State for a single expansion run.

    Holds the pseudo-parameter table, current parameter values, the cache of
    already-known resource attributes and evaluated conditions.  Actions only
    read from it; the driver mutates it through the ``set_*`` methods.  A
    context belongs to one run and is not safe to share between runs.

    Args:
        template: The template being expanded, as a :class:`Template` or the
            raw document dict.  ``None`` gives an empty context.
    """

    def __init__(self, template: Template | dict[str, Any] | None = None) -> None:
        if template is not None and not isinstance(template, Template):
            template = Template.from_dict(template)
        self.template: Template | None = template
        self.pseudo_parameters: dict[str, str] = dict(DEFAULT_PSEUDO_PARAMETERS)
        self.parameters: dict[str, Any] = {}
        self.resources: dict[str, dict[str, Any]] = {}
        self.conditions: dict[str, bool] = {}
        self._resource_aliases: set[str] = set()

        if template is not None and template.parameters:
            for name, param in template.parameters.items():
                # A null Default leaves the parameter for deploy time.
                if param.has_default and param.default is not None:
                    self.parameters[name] = param.default
            LOG.debug(
                "Seeded %d parameter default(s) from %d declared parameter(s)",
                len(self.parameters),
                len(template.parameters),
            )

    def set_pseudo_parameter(self, name: str, value: str) -> None:
        self.pseudo_parameters[name] = value

    def set_parameter(self, name: str, value: Any) -> None:
        self.parameters[name] = value

    def set_resource_attribute(self, logical_id: str, attribute: str, value: Any) -> None:
        self.resources.setdefault(logical_id, {})[attribute] = value

    def set_condition(self, name: str, value: bool) -> None:
        self.conditions[name] = value

    def add_resource_alias(self, logical_id: str) -> None:
        """Treat *logical_id* as declared, e.g. the new name of a renamed resource."""
        self._resource_aliases.add(logical_id)

    def is_pseudo_parameter(self, name: str) -> bool:
        return name.startswith(PSEUDO_PARAMETER_PREFIX) or name in self.pseudo_parameters

    def is_parameter(self, name: str) -> bool:
        """True for parameters with a value or declared in the template."""
        if name in self.parameters:
            return True
        return self.template is not None and self.template.has_parameter(name)

    def has_declared_parameter(self, name: str) -> bool:
        return self.template is not None and self.template.has_parameter(name)

    def has_declared_resource(self, name: str) -> bool:
        if name in self._resource_aliases:
            return True
        return self.template is not None and self.template.has_resource(name)

    @property
    def declares_resources(self) -> bool:
        """True when the template carries a ``Resources`` section at all."""
        return self.template is not None and self.template.resources is not None

    def get_resource_attribute(self, logical_id: str, attribute: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` from the attribute cache."""
        attributes = self.resources.get(logical_id)
        if attributes is not None and attribute in attributes:
            return True, attributes[attribute]
        return False, None

    def mappings(self) -> dict[str, Any] | None:
        if self.template is None:
            return None
        return self.template.mappings
