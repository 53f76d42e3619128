"""Built-in intrinsic function actions.

Every action receives an argument whose nested intrinsics have already been
resolved.  It either returns a concrete value or re-wraps itself as an
intrinsic map so the deploying engine can evaluate it later.  ``Fn::Sub``
lives in :mod:`cfnexpand.sub`.
"""

from __future__ import annotations

from typing import Any

from cfnexpand.context import NO_VALUE_PSEUDO_PARAMETER, ResolveContext
from cfnexpand.models import NO_VALUE

REF = "Ref"
CONDITION = "Condition"
FN_SUB = "Fn::Sub"
FN_GET_ATT = "Fn::GetAtt"
FN_FIND_IN_MAP = "Fn::FindInMap"
FN_JOIN = "Fn::Join"
FN_IF = "Fn::If"
FN_SELECT = "Fn::Select"
FN_BASE64 = "Fn::Base64"
FN_GET_AZS = "Fn::GetAZs"
FN_SPLIT = "Fn::Split"
FN_IMPORT_VALUE = "Fn::ImportValue"

NO_VALUE_REF = {REF: NO_VALUE_PSEUDO_PARAMETER}


def is_intrinsic_key(key: str) -> bool:
    return key in (REF, CONDITION) or key.startswith("Fn::")


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class IntrinsicError(Exception):
    """Raised when an intrinsic function cannot be evaluated.

    ``path`` is filled in by the resolver with the document location of the
    failing node, e.g. ``Resources.MyFunction.Properties.Handler``.
    """

    def __init__(self, function: str, message: str, path: str | None = None) -> None:
        self.function = function
        self.message = message
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.function}: {self.message}"
        return f"{self.function}: {self.message}"


class StructuralError(IntrinsicError):
    """The intrinsic's argument has the wrong shape or type."""


class IntrinsicLookupError(IntrinsicError, LookupError):
    """A mapping, mapping key or resource named by the intrinsic does not exist."""


class Action:
    """Base class for intrinsic function handlers.

    Subclasses set :attr:`name` and implement :meth:`resolve`.  Actions hold no
    state; everything they need comes from the argument and the context.
    """

    name: str = ""

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        raise NotImplementedError

    def preserve(self, value: Any) -> dict[str, Any]:
        """Re-wrap *value* as this intrinsic for deploy-time resolution."""
        return {self.name: value}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


def _require_list(function: str, value: Any, length: int) -> list[Any]:
    if not isinstance(value, list):
        raise StructuralError(function, f"expected array, got {type_name(value)}")
    if len(value) != length:
        raise StructuralError(function, f"expected {length} elements, got {len(value)}")
    return value


class RefAction(Action):
    name = REF

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        if not isinstance(value, str):
            raise StructuralError(self.name, f"expected string, got {type_name(value)}")

        if value == NO_VALUE_PSEUDO_PARAMETER:
            return NO_VALUE
        if value in ctx.pseudo_parameters:
            return ctx.pseudo_parameters[value]
        if value in ctx.parameters:
            return ctx.parameters[value]

        # Declared parameters without a value, resources and unknown names are
        # all left for CloudFormation.
        return self.preserve(value)


class GetAttAction(Action):
    name = FN_GET_ATT

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        logical_id, attribute = self.split_argument(value)

        if ctx.declares_resources and not ctx.has_declared_resource(logical_id):
            raise IntrinsicLookupError(self.name, f"resource '{logical_id}' not found")

        found, cached = ctx.get_resource_attribute(logical_id, attribute)
        if found:
            return cached

        return self.preserve([logical_id, attribute])

    def split_argument(self, value: Any) -> tuple[str, str]:
        """Return ``(logical_id, attribute)`` from either argument form."""
        if isinstance(value, list):
            if len(value) < 2:
                raise StructuralError(self.name, "array must have at least 2 elements")
            for part in value:
                if not isinstance(part, str):
                    raise StructuralError(
                        self.name, f"attribute parts must be strings, got {type_name(part)}"
                    )
            return value[0], ".".join(value[1:])

        if isinstance(value, str):
            logical_id, sep, attribute = value.partition(".")
            if not sep or not logical_id or not attribute:
                raise StructuralError(self.name, f"invalid string format: {value}")
            return logical_id, attribute

        raise StructuralError(self.name, f"expected array or string, got {type_name(value)}")


class FindInMapAction(Action):
    name = FN_FIND_IN_MAP

    _KEY_LABELS = ("MapName", "TopLevelKey", "SecondLevelKey")

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        args = _require_list(self.name, value, 3)

        keys = [self._key(arg, label) for arg, label in zip(args, self._KEY_LABELS)]
        if any(key is None for key in keys):
            return self.preserve(value)
        map_name, top_key, second_key = keys

        mappings = ctx.mappings()
        if not mappings or map_name not in mappings:
            raise IntrinsicLookupError(self.name, f"mapping '{map_name}' not found")

        mapping = mappings[map_name]
        if not isinstance(mapping, dict):
            raise IntrinsicLookupError(self.name, f"mapping '{map_name}' is not a map")

        if top_key not in mapping:
            raise IntrinsicLookupError(
                self.name, f"key '{top_key}' not found in mapping '{map_name}'"
            )
        top_level = mapping[top_key]
        if not isinstance(top_level, dict):
            raise IntrinsicLookupError(
                self.name, f"value at '{map_name}.{top_key}' is not a map"
            )

        if second_key not in top_level:
            raise IntrinsicLookupError(
                self.name,
                f"key '{second_key}' not found in mapping '{map_name}.{top_key}'",
            )
        return top_level[second_key]

    def _key(self, value: Any, label: str) -> str | None:
        # None marks a key that is still an unresolved intrinsic.
        if isinstance(value, str):
            return value
        if isinstance(value, dict):
            return None
        raise StructuralError(
            self.name, f"{label} must be string or intrinsic, got {type_name(value)}"
        )


class IfAction(Action):
    name = FN_IF

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        args = _require_list(self.name, value, 3)
        condition, true_value, false_value = args
        if not isinstance(condition, str):
            raise StructuralError(
                self.name, f"condition name must be string, got {type_name(condition)}"
            )

        if condition not in ctx.conditions:
            return self.preserve(value)

        selected = true_value if ctx.conditions[condition] else false_value
        if selected == NO_VALUE_REF:
            return NO_VALUE
        return selected


class ConditionAction(Action):
    name = CONDITION

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        if not isinstance(value, str):
            raise StructuralError(self.name, f"expected string, got {type_name(value)}")
        if value in ctx.conditions:
            return ctx.conditions[value]
        return self.preserve(value)


class JoinAction(Action):
    """``Fn::Join`` is validated and always deferred to deploy time."""

    name = FN_JOIN

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        self.validate(value)
        return self.preserve(value)

    def validate(self, value: Any) -> None:
        delimiter, items = _require_list(self.name, value, 2)
        if not isinstance(delimiter, str):
            raise StructuralError(
                self.name, f"delimiter must be string, got {type_name(delimiter)}"
            )
        if not isinstance(items, (list, dict)):
            raise StructuralError(
                self.name, f"values must be array or intrinsic, got {type_name(items)}"
            )


class EagerJoinAction(JoinAction):
    """``Fn::Join`` that concatenates at transform time when every item is a string.

    Not registered by default; opt in with ``registry.register(EagerJoinAction())``.
    """

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        self.validate(value)
        delimiter, items = value
        if isinstance(items, list) and all(isinstance(item, str) for item in items):
            return delimiter.join(items)
        return self.preserve(value)


class SelectAction(Action):
    name = FN_SELECT

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        _require_list(self.name, value, 2)
        return self.preserve(value)


class SplitAction(Action):
    name = FN_SPLIT

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        delimiter, _ = _require_list(self.name, value, 2)
        if not isinstance(delimiter, str):
            raise StructuralError(
                self.name, f"delimiter must be string, got {type_name(delimiter)}"
            )
        return self.preserve(value)


class _PassthroughAction(Action):
    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        return self.preserve(value)


class Base64Action(_PassthroughAction):
    name = FN_BASE64


class GetAZsAction(_PassthroughAction):
    name = FN_GET_AZS


class ImportValueAction(_PassthroughAction):
    name = FN_IMPORT_VALUE
