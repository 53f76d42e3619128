"""Data models for cfnexpand."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypeAlias

# Any node of a JSON template document.
Value: TypeAlias = "None | bool | int | float | str | list[Value] | dict[str, Value]"

SSM_PARAMETER_TYPE_PREFIX = "AWS::SSM::Parameter::Value<"

SECTION_ORDER = (
    "AWSTemplateFormatVersion",
    "Transform",
    "Description",
    "Metadata",
    "Parameters",
    "Mappings",
    "Conditions",
    "Globals",
    "Resources",
    "Outputs",
)


class NoValue:
    """Result of resolving ``{"Ref": "AWS::NoValue"}``.

    Not a :data:`Value`: it only ever comes back from a resolve call and tells
    the caller to drop the slot (dict entry or list element) it came from.
    """

    _instance: NoValue | None = None

    def __new__(cls) -> NoValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = NoValue()


def is_no_value(value: object) -> bool:
    return value is NO_VALUE


@dataclass
class TemplateParameter:
    """A parameter declared in a template's ``Parameters`` section."""

    name: str
    type: str = "String"
    default: Any = None
    has_default: bool = False   # distinguishes "Default: null" from no Default
    description: str | None = None
    allowed_values: list[Any] | None = None
    no_echo: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            raise ValueError(
                f"Invalid type {self.type!r} for parameter {self.name!r}; expected a string"
            )

    @property
    def is_ssm_parameter(self) -> bool:
        return self.type.startswith(SSM_PARAMETER_TYPE_PREFIX)

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> TemplateParameter:
        if not isinstance(data, dict):
            raise ValueError(f"Parameter {name!r} must be a mapping, got {type(data).__name__}")
        return cls(
            name=name,
            type=data.get("Type", "String"),
            default=data.get("Default"),
            has_default="Default" in data,
            description=data.get("Description"),
            allowed_values=data.get("AllowedValues"),
            no_echo=str(data.get("NoEcho", False)).lower() == "true",
            raw=dict(data),
        )


def _section(document: dict[str, Any], name: str) -> dict[str, Any] | None:
    section = document.get(name)
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ValueError(
            f"Template section {name!r} must be a mapping, got {type(section).__name__}"
        )
    return section


@dataclass
class Template:
    """Read-only snapshot of a template document.

    A section set to ``None`` is absent from the document, which is not the
    same as an empty section: lookups against an absent ``Resources`` section
    are skipped instead of failing.
    """

    format_version: str | None = None
    transform: Any = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    parameters: dict[str, TemplateParameter] | None = None
    mappings: dict[str, Any] | None = None
    conditions: dict[str, Any] | None = None
    resources: dict[str, Any] | None = None
    outputs: dict[str, Any] | None = None
    globals: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, document: dict[str, Any] | None) -> Template:
        """Build a :class:`Template` from a parsed JSON document.

        Raises:
            ValueError: If the document or one of its sections is not a mapping.
        """
        if document is None:
            return cls()
        if not isinstance(document, dict):
            raise ValueError(f"Template must be a mapping, got {type(document).__name__}")

        parameters = _section(document, "Parameters")
        return cls(
            format_version=document.get("AWSTemplateFormatVersion"),
            transform=document.get("Transform"),
            description=document.get("Description"),
            metadata=_section(document, "Metadata"),
            parameters=(
                {name: TemplateParameter.from_dict(name, data) for name, data in parameters.items()}
                if parameters is not None
                else None
            ),
            mappings=_section(document, "Mappings"),
            conditions=_section(document, "Conditions"),
            resources=_section(document, "Resources"),
            outputs=_section(document, "Outputs"),
            globals=_section(document, "Globals"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the document form, sections in conventional order."""
        sections: dict[str, Any] = {
            "AWSTemplateFormatVersion": self.format_version,
            "Transform": self.transform,
            "Description": self.description,
            "Metadata": self.metadata,
            "Parameters": (
                {name: param.raw for name, param in self.parameters.items()}
                if self.parameters is not None
                else None
            ),
            "Mappings": self.mappings,
            "Conditions": self.conditions,
            "Globals": self.globals,
            "Resources": self.resources,
            "Outputs": self.outputs,
        }
        return {name: sections[name] for name in SECTION_ORDER if sections[name] is not None}

    def has_parameter(self, name: str) -> bool:
        return self.parameters is not None and name in self.parameters

    def has_resource(self, name: str) -> bool:
        return self.resources is not None and name in self.resources

    @property
    def resource_ids(self) -> list[str]:
        return sorted(self.resources or {})
