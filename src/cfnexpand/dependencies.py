"""Resource dependency graph built while resolving a template."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cfnexpand.actions import FN_GET_ATT, REF


class CircularDependencyError(Exception):
    """Raised by :meth:`DependencyTracker.topological_sort` on a cycle."""

    def __init__(self, resource: str, cycle: list[str] | None = None) -> None:
        self.resource = resource
        self.cycle = cycle or [resource]
        super().__init__(f"circular dependency detected involving resource: {resource}")


class DependencyTracker:
    """Directed "resource A references resource B" edges.

    ``dependencies`` maps a source to the targets it references and
    ``dependents`` is the inverse index; both are updated together.  All
    queries return sorted lists so output is deterministic.
    """

    def __init__(self) -> None:
        self.dependencies: dict[str, set[str]] = {}
        self.dependents: dict[str, set[str]] = {}

    def add_dependency(self, source: str, target: str) -> None:
        self.dependencies.setdefault(source, set()).add(target)
        self.dependents.setdefault(target, set()).add(source)

    def get_dependencies(self, resource: str) -> list[str]:
        return sorted(self.dependencies.get(resource, ()))

    def get_dependents(self, resource: str) -> list[str]:
        return sorted(self.dependents.get(resource, ()))

    def has_dependency(self, source: str, target: str) -> bool:
        return target in self.dependencies.get(source, ())

    def all_dependencies(self) -> dict[str, list[str]]:
        return {source: sorted(targets) for source, targets in sorted(self.dependencies.items())}

    def count(self) -> int:
        """Number of edges."""
        return sum(len(targets) for targets in self.dependencies.values())

    def __len__(self) -> int:
        return self.count()

    def merge(self, other: DependencyTracker | None) -> None:
        if other is None:
            return
        for source, targets in other.dependencies.items():
            for target in targets:
                self.add_dependency(source, target)

    def clear(self) -> None:
        self.dependencies = {}
        self.dependents = {}

    def topological_sort(self, resources: list[str]) -> list[str]:
        """Order *resources* so each one comes after everything it depends on.

        Only edges between members of *resources* are considered.  Resources
        are visited in sorted order, which makes the result deterministic.

        Raises:
            CircularDependencyError: Naming the resource at which a cycle was
                found, i.e. one that was reached again while still in progress.
        """
        members = set(resources)
        visited: set[str] = set()
        in_progress: list[str] = []
        order: list[str] = []

        def visit(resource: str) -> None:
            if resource in visited:
                return
            if resource in in_progress:
                cycle = in_progress[in_progress.index(resource):] + [resource]
                raise CircularDependencyError(resource, cycle)

            in_progress.append(resource)
            for dependency in sorted(self.dependencies.get(resource, ())):
                if dependency in members:
                    visit(dependency)
            in_progress.pop()

            visited.add(resource)
            order.append(resource)

        for resource in sorted(members):
            visit(resource)
        return order


@dataclass(frozen=True)
class ResourceRef:
    """A ``Ref`` or ``Fn::GetAtt`` found in a document."""

    logical_id: str
    attribute: str | None   # None for Ref
    source_path: str


def collect_resource_refs(value: Any, path: str = "") -> list[ResourceRef]:
    """Return every ``Ref``/``Fn::GetAtt`` in *value*, in document order.

    Nothing is resolved; pseudo-parameter and parameter refs are included.
    """
    refs: list[ResourceRef] = []
    _collect(value, path, refs)
    return refs


def _collect(value: Any, path: str, refs: list[ResourceRef]) -> None:
    if isinstance(value, list):
        for index, item in enumerate(value):
            _collect(item, f"{path}[{index}]", refs)
        return
    if not isinstance(value, dict):
        return

    if len(value) == 1:
        if REF in value and isinstance(value[REF], str):
            refs.append(ResourceRef(value[REF], None, path))
        elif FN_GET_ATT in value:
            ref = _get_att_ref(value[FN_GET_ATT], path)
            if ref is not None:
                refs.append(ref)

    for key, item in value.items():
        _collect(item, f"{path}.{key}" if path else key, refs)


def _get_att_ref(argument: Any, path: str) -> ResourceRef | None:
    if isinstance(argument, list) and len(argument) >= 2:
        logical_id, attribute = argument[0], argument[1]
        if isinstance(logical_id, str) and isinstance(attribute, str):
            return ResourceRef(logical_id, attribute, path)
    elif isinstance(argument, str):
        logical_id, sep, attribute = argument.partition(".")
        if sep:
            return ResourceRef(logical_id, attribute, path)
    return None
