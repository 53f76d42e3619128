"""Name-keyed table of intrinsic actions and the generic recursive resolve."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from cfnexpand.actions import (
    FN_IF,
    NO_VALUE_REF,
    Action,
    Base64Action,
    ConditionAction,
    FindInMapAction,
    GetAttAction,
    GetAZsAction,
    IfAction,
    ImportValueAction,
    JoinAction,
    RefAction,
    SelectAction,
    SplitAction,
    is_intrinsic_key,
)
from cfnexpand.context import ResolveContext
from cfnexpand.models import is_no_value
from cfnexpand.sub import SubAction

LOG = logging.getLogger(__name__)

DEFAULT_ACTIONS: tuple[type[Action], ...] = (
    RefAction,
    SubAction,
    GetAttAction,
    FindInMapAction,
    JoinAction,
    IfAction,
    SelectAction,
    Base64Action,
    GetAZsAction,
    SplitAction,
    ImportValueAction,
    ConditionAction,
)


def intrinsic_name(node: dict[str, Any]) -> str | None:
    """Return the function name if *node* is a single-key intrinsic map."""
    if len(node) != 1:
        return None
    key = next(iter(node))
    return key if is_intrinsic_key(key) else None


def resolve_argument(
    name: str, argument: Any, resolve: Callable[[Any, int | None], Any]
) -> Any:
    """Resolve an intrinsic's argument with *resolve* before its action runs.

    *resolve* is called with the value and, for ``Fn::If`` branches, the
    element index.  ``Fn::If`` keeps all three slots: a branch that resolves
    to no value is carried as ``{"Ref": "AWS::NoValue"}`` so the action can
    still pick it.  Both branches are resolved, not only the selected one.
    """
    if name == FN_IF and isinstance(argument, list):
        branches = []
        for index, element in enumerate(argument):
            resolved = resolve(element, index)
            branches.append(dict(NO_VALUE_REF) if is_no_value(resolved) else resolved)
        return branches

    resolved = resolve(argument, None)
    return dict(NO_VALUE_REF) if is_no_value(resolved) else resolved


class Registry:
    """Maps intrinsic function names to :class:`Action` handlers.

    Built with the twelve default actions; :meth:`register` adds new ones or
    replaces a default (e.g. with :class:`~cfnexpand.actions.EagerJoinAction`).
    """

    def __init__(self) -> None:
        self.actions: dict[str, Action] = {}
        for action_cls in DEFAULT_ACTIONS:
            self.register(action_cls())

    def register(self, action: Action) -> None:
        if not action.name:
            raise ValueError(f"{type(action).__name__} has no intrinsic name")
        self.actions[action.name] = action

    def get(self, name: str) -> Action | None:
        return self.actions.get(name)

    def names(self) -> list[str]:
        return sorted(self.actions)

    def __contains__(self, name: object) -> bool:
        return name in self.actions

    def invoke(self, ctx: ResolveContext, name: str, argument: Any) -> Any:
        """Run the action for *name* on an already-resolved argument.

        Intrinsics without a registered action (``Fn::Equals``, ``Fn::Cidr``,
        future functions) come back as ``{name: argument}``.
        """
        action = self.actions.get(name)
        if action is None:
            LOG.debug("No action registered for %s; preserving it", name)
            return {name: argument}
        return action.resolve(ctx, argument)

    def resolve(self, ctx: ResolveContext, value: Any) -> Any:
        """Resolve every intrinsic in *value*, innermost first.

        Returns :data:`~cfnexpand.models.NO_VALUE` when *value* itself
        resolves to no value.  Dict entries and list elements that resolve to
        no value are dropped.
        """
        if isinstance(value, dict):
            name = intrinsic_name(value)
            if name is not None:
                argument = resolve_argument(
                    name, value[name], lambda v, _index: self.resolve(ctx, v)
                )
                return self.invoke(ctx, name, argument)
            resolved_map = {}
            for key, item in value.items():
                resolved = self.resolve(ctx, item)
                if not is_no_value(resolved):
                    resolved_map[key] = resolved
            return resolved_map

        if isinstance(value, list):
            resolved_list = []
            for item in value:
                resolved = self.resolve(ctx, item)
                if not is_no_value(resolved):
                    resolved_list.append(resolved)
            return resolved_list

        return value
