"""Walk a template document and resolve its intrinsic functions."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from cfnexpand.actions import (
    FN_GET_ATT,
    FN_GET_AZS,
    FN_IMPORT_VALUE,
    REF,
    IntrinsicError,
)
from cfnexpand.context import ResolveContext
from cfnexpand.dependencies import DependencyTracker
from cfnexpand.models import NO_VALUE, Template, is_no_value
from cfnexpand.registry import Registry, intrinsic_name, resolve_argument

LOG = logging.getLogger(__name__)

_RESOURCES_PREFIX = "Resources."
_RESOLVED_RESOURCE_SECTIONS = ("Properties", "Metadata", "UpdatePolicy")
# Always left for CloudFormation, whatever their argument.
_DEPLOY_TIME_ONLY = (FN_IMPORT_VALUE, FN_GET_AZS)


def _child_path(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


class Resolver:
    """Resolve intrinsics across a document, tracking resource dependencies.

    On top of :meth:`Registry.resolve <cfnexpand.registry.Registry.resolve>`
    the resolver:

    * renames logical IDs in intrinsic arguments using *logical_id_map*,
    * returns intrinsics whose argument is a *placeholder* (and every
      ``Fn::ImportValue``/``Fn::GetAZs``) untouched,
    * records a dependency edge for each ``Ref``/``Fn::GetAtt`` that points
      from one resource to another,
    * attaches the document path to any :class:`IntrinsicError`.

    One resolver serves one run; it mutates its context and tracker in place.

    Args:
        context: The run's :class:`ResolveContext`.
        registry: Action table; a default :class:`Registry` if omitted.
        dependencies: Tracker to record edges into; a new one if omitted.
        logical_id_map: Old to new logical ID renames.
        placeholders: Argument values that must never be resolved.
    """

    def __init__(
        self,
        context: ResolveContext,
        *,
        registry: Registry | None = None,
        dependencies: DependencyTracker | None = None,
        logical_id_map: dict[str, str] | None = None,
        placeholders: Iterable[str] | None = None,
    ) -> None:
        self.context = context
        self.registry = registry or Registry()
        self.dependencies = dependencies if dependencies is not None else DependencyTracker()
        self.logical_id_map: dict[str, str] = {}
        self.placeholders: set[str] = set(placeholders or ())
        for old_id, new_id in (logical_id_map or {}).items():
            self.add_logical_id_mapping(old_id, new_id)

    # -- configuration -----------------------------------------------------

    def set_parameter(self, name: str, value: Any) -> None:
        self.context.set_parameter(name, value)

    def set_resource_attribute(self, logical_id: str, attribute: str, value: Any) -> None:
        self.context.set_resource_attribute(logical_id, attribute, value)

    def add_logical_id_mapping(self, old_id: str, new_id: str) -> None:
        self.logical_id_map[old_id] = new_id
        self.context.add_resource_alias(new_id)

    def add_placeholder(self, value: str) -> None:
        self.placeholders.add(value)

    def map_logical_id(self, logical_id: str) -> str:
        return self.logical_id_map.get(logical_id, logical_id)

    # -- resolution --------------------------------------------------------

    def resolve(self, value: Any, path: str = "") -> Any:
        """Resolve *value*; *path* is its location in the document.

        Edges are only recorded below ``Resources.<LogicalId>``.  Returns
        :data:`~cfnexpand.models.NO_VALUE` if *value* resolves to no value.

        Raises:
            IntrinsicError: With ``path`` set to the failing node.
        """
        if isinstance(value, dict):
            name = intrinsic_name(value)
            if name is not None:
                return self._resolve_intrinsic(value, name, path)
            return self._resolve_map(value, path)
        if isinstance(value, list):
            return self._resolve_list(value, path)
        return value

    def _resolve_map(self, node: dict[str, Any], path: str) -> dict[str, Any]:
        result = {}
        for key, item in node.items():
            resolved = self.resolve(item, _child_path(path, key))
            if not is_no_value(resolved):
                result[key] = resolved
        return result

    def _resolve_list(self, items: list[Any], path: str) -> list[Any]:
        result = []
        for index, item in enumerate(items):
            resolved = self.resolve(item, f"{path}[{index}]")
            if not is_no_value(resolved):
                result.append(resolved)
        return result

    def _resolve_intrinsic(self, node: dict[str, Any], name: str, path: str) -> Any:
        argument = self._mutate_logical_ids(node[name])

        if self._is_placeholder(name, argument):
            LOG.debug("Leaving %s at %s unresolved", name, path or "<root>")
            return node

        self._track_dependency(name, argument, path)

        argument_path = _child_path(path, name)
        try:
            resolved = resolve_argument(
                name,
                argument,
                lambda value, index: self.resolve(
                    value, argument_path if index is None else f"{argument_path}[{index}]"
                ),
            )
            return self.registry.invoke(self.context, name, resolved)
        except IntrinsicError as exc:
            if exc.path is None and path:
                exc.path = path
            raise

    def _mutate_logical_ids(self, value: Any) -> Any:
        if not self.logical_id_map:
            return value
        if isinstance(value, str):
            return self.map_logical_id(value)
        if isinstance(value, list):
            # GetAtt array form: only the logical ID in front is renamed.
            if value and isinstance(value[0], str) and value[0] in self.logical_id_map:
                return [self.logical_id_map[value[0]], *value[1:]]
            return value
        if isinstance(value, dict):
            return {key: self._mutate_logical_ids(item) for key, item in value.items()}
        return value

    def _is_placeholder(self, name: str, argument: Any) -> bool:
        if isinstance(argument, str) and argument in self.placeholders:
            return True
        return name in _DEPLOY_TIME_ONLY

    # -- dependencies ------------------------------------------------------

    def _track_dependency(self, name: str, argument: Any, path: str) -> None:
        source = self._source_resource(path)
        if source is None:
            return

        target = None
        if name == REF and isinstance(argument, str):
            target = argument
        elif name == FN_GET_ATT:
            if isinstance(argument, list) and argument and isinstance(argument[0], str):
                target = argument[0]
            elif isinstance(argument, str):
                target = argument.partition(".")[0]

        if target and self._is_resource_reference(target):
            LOG.debug("%s depends on %s (%s at %s)", source, target, name, path)
            self.dependencies.add_dependency(source, target)

    @staticmethod
    def _source_resource(path: str) -> str | None:
        if not path.startswith(_RESOURCES_PREFIX):
            return None
        logical_id = path[len(_RESOURCES_PREFIX):].split(".", 1)[0]
        return logical_id or None

    def _is_resource_reference(self, name: str) -> bool:
        if self.context.is_pseudo_parameter(name) or self.context.is_parameter(name):
            return False
        if self.context.declares_resources:
            return self.context.has_declared_resource(name)
        return True

    # -- whole templates ---------------------------------------------------

    def resolve_template(self, template: Template | dict[str, Any] | None) -> dict[str, Any] | None:
        """Resolve a full template and return the expanded document.

        ``Metadata`` and ``Conditions`` are resolved; ``Parameters``,
        ``Mappings`` and ``Globals`` are definitions and are copied as-is.
        Each resource has its ``Properties``, ``Metadata`` and
        ``UpdatePolicy`` resolved, its logical ID and ``DependsOn`` entries
        renamed and every other attribute copied.  Each output has its
        ``Value`` and ``Export.Name`` resolved.
        """
        if template is None:
            return None
        if not isinstance(template, Template):
            template = Template.from_dict(template)

        result: dict[str, Any] = {}
        if template.format_version is not None:
            result["AWSTemplateFormatVersion"] = template.format_version
        if template.transform is not None:
            result["Transform"] = template.transform
        if template.description is not None:
            result["Description"] = template.description
        if template.metadata is not None:
            result["Metadata"] = self._resolve_map(template.metadata, "Metadata")
        if template.parameters is not None:
            result["Parameters"] = {name: p.raw for name, p in template.parameters.items()}
        if template.mappings is not None:
            result["Mappings"] = template.mappings
        if template.conditions is not None:
            result["Conditions"] = self._resolve_map(template.conditions, "Conditions")
        if template.globals is not None:
            result["Globals"] = template.globals

        if template.resources is not None:
            resources = {}
            for logical_id, resource in template.resources.items():
                new_id = self.map_logical_id(logical_id)
                resources[new_id] = self._resolve_resource(resource, new_id)
            result["Resources"] = resources
            LOG.info(
                "Resolved %d resource(s), %d dependency edge(s) recorded",
                len(resources),
                self.dependencies.count(),
            )

        if template.outputs is not None:
            result["Outputs"] = {
                name: self._resolve_output(output, name)
                for name, output in template.outputs.items()
            }

        return result

    def _resolve_resource(self, resource: Any, logical_id: str) -> Any:
        if not isinstance(resource, dict):
            return resource
        result = {}
        for key, value in resource.items():
            if key in _RESOLVED_RESOURCE_SECTIONS and isinstance(value, dict):
                result[key] = self._resolve_map(value, f"Resources.{logical_id}.{key}")
            elif key == "DependsOn":
                result[key] = self._map_depends_on(value)
            else:
                result[key] = value
        return result

    def _map_depends_on(self, depends_on: Any) -> Any:
        if isinstance(depends_on, str):
            return self.map_logical_id(depends_on)
        if isinstance(depends_on, list):
            return [
                self.map_logical_id(dep) if isinstance(dep, str) else dep
                for dep in depends_on
            ]
        return depends_on

    def _resolve_output(self, output: Any, name: str) -> Any:
        if not isinstance(output, dict):
            return output
        result = {}
        for key, value in output.items():
            if key == "Value":
                value = self.resolve(value, f"Outputs.{name}.Value")
            elif key == "Export" and isinstance(value, dict) and "Name" in value:
                export_name = self.resolve(value["Name"], f"Outputs.{name}.Export.Name")
                value = {k: v for k, v in value.items() if k != "Name"}
                if not is_no_value(export_name):
                    value = {"Name": export_name, **value}
            if value is not NO_VALUE:
                result[key] = value
        return result

    def resource_order(self, template: Template | dict[str, Any] | None = None) -> list[str]:
        """Topological order of the template's (renamed) resources.

        Uses the edges recorded so far, so call it after :meth:`resolve_template`.
        Defaults to the context's template.

        Raises:
            CircularDependencyError: If the recorded edges contain a cycle.
        """
        if template is None:
            template = self.context.template
        elif not isinstance(template, Template):
            template = Template.from_dict(template)
        if template is None or template.resources is None:
            return []
        resources = [self.map_logical_id(logical_id) for logical_id in template.resources]
        return self.dependencies.topological_sort(resources)
