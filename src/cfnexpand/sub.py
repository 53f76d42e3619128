"""The ``Fn::Sub`` action."""

from __future__ import annotations

import logging
import re
from typing import Any

from cfnexpand.actions import FN_SUB, Action, StructuralError, type_name
from cfnexpand.context import ResolveContext

LOG = logging.getLogger(__name__)

_VARIABLE_RE = re.compile(r"\$\{([^}]+)\}")


def value_to_string(value: Any) -> str:
    """Render a parameter value the way CloudFormation substitutes it.

    Integers and whole floats render without a decimal point, booleans as
    ``true``/``false`` and lists (``CommaDelimitedList``) comma-joined.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, list):
        return ",".join(value_to_string(item) for item in value)
    if value is None:
        return ""
    return str(value)


def _is_substitutable(value: Any) -> bool:
    # Maps and lists are unresolved intrinsics; null has no text to substitute.
    return value is not None and not isinstance(value, (dict, list))


class SubAction(Action):
    """Substitute ``${Name}`` variables in a string.

    Variables that cannot be resolved at transform time stay in the string and
    the result is re-wrapped as ``Fn::Sub``; in the array form only the local
    variables that are still needed are carried along.
    """

    name = FN_SUB

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        if isinstance(value, str):
            return self.substitute(ctx, value, None)

        if isinstance(value, list):
            if len(value) != 2:
                raise StructuralError(self.name, "array form requires exactly 2 elements")
            template, local_vars = value
            if not isinstance(template, str):
                raise StructuralError(
                    self.name, f"first element must be string, got {type_name(template)}"
                )
            if not isinstance(local_vars, dict):
                raise StructuralError(
                    self.name, f"second element must be map, got {type_name(local_vars)}"
                )
            return self.substitute(ctx, template, local_vars)

        raise StructuralError(self.name, f"expected string or array, got {type_name(value)}")

    def substitute(
        self, ctx: ResolveContext, template: str, local_vars: dict[str, Any] | None
    ) -> Any:
        lookups: dict[str, str | None] = {}
        for match in _VARIABLE_RE.finditer(template):
            name = match.group(1)
            if name.startswith("!") or name in lookups:
                continue
            lookups[name] = self._lookup(ctx, name, local_vars)

        unresolved = {name for name, text in lookups.items() if text is None}

        def render(match: re.Match[str]) -> str:
            name = match.group(1)
            if name.startswith("!"):
                # ${!Literal} is an escape; CloudFormation renders it as ${Literal}.
                return "${" + name[1:] + "}" if not unresolved else match.group(0)
            text = lookups[name]
            return match.group(0) if text is None else text

        result = _VARIABLE_RE.sub(render, template)

        if not unresolved:
            return result

        if local_vars:
            carried = {k: v for k, v in local_vars.items() if k in unresolved}
            if carried:
                return self.preserve([result, carried])
        return self.preserve(result)

    def _lookup(
        self, ctx: ResolveContext, name: str, local_vars: dict[str, Any] | None
    ) -> str | None:
        """Return the substitution text for *name*, or None if unresolved."""
        if local_vars is not None and name in local_vars:
            local = local_vars[name]
            return value_to_string(local) if _is_substitutable(local) else None

        if "." in name:
            logical_id, _, attribute = name.partition(".")
            found, cached = ctx.get_resource_attribute(logical_id, attribute)
            if found and _is_substitutable(cached):
                return value_to_string(cached)
            return None

        if name in ctx.pseudo_parameters:
            return ctx.pseudo_parameters[name]

        if name in ctx.parameters and ctx.parameters[name] is not None:
            return value_to_string(ctx.parameters[name])

        if ctx.has_declared_parameter(name) or ctx.has_declared_resource(name):
            LOG.debug("Deferring ${%s} to deploy time", name)
        else:
            LOG.debug("Unknown variable ${%s} left for CloudFormation", name)
        return None
