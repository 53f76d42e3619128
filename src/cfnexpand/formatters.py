"""Rich-based formatters for cfnexpand output."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from cfnexpand.dependencies import DependencyTracker, ResourceRef


def _add_dependencies(
    branch: Tree,
    resource: str,
    tracker: DependencyTracker,
    members: set[str],
    ancestors: tuple[str, ...],
) -> None:
    """Recursively add *resource*'s dependencies below *branch*."""
    for dependency in tracker.get_dependencies(resource):
        if dependency in ancestors:
            # Back-edge: show it once, don't recurse forever.
            branch.add(Text(f"{dependency} (cycle)", style="bold red"))
            continue
        style = "bold green" if dependency in members else "dim"
        child = branch.add(Text(dependency, style=style))
        _add_dependencies(child, dependency, tracker, members, ancestors + (dependency,))


def render_dependency_tree(
    tracker: DependencyTracker, resources: list[str], title: str = "Resources"
) -> Tree:
    """Render each resource with the resources it depends on nested below it.

    Args:
        tracker: Edges recorded while resolving.
        resources: Logical IDs to show at the top level.
        title: Label of the root node.

    Returns:
        A :class:`rich.tree.Tree` ready to be printed.
    """
    members = set(resources)
    rich_root = Tree(Text(title, style="bold white"))
    for resource in sorted(resources):
        label = Text(resource, style="bold blue")
        dependents = tracker.get_dependents(resource)
        if dependents:
            label.append(f"  ({len(dependents)} dependent(s))", style="dim italic")
        branch = rich_root.add(label)
        _add_dependencies(branch, resource, tracker, members, (resource,))
    return rich_root


def render_order(order: list[str], tracker: DependencyTracker) -> Table:
    """Render the processing order with each resource's direct dependencies."""
    table = Table(title="Resource order", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Resource", style="cyan")
    table.add_column("Depends on", style="green")

    for position, resource in enumerate(order, start=1):
        table.add_row(
            str(position), Text(resource), Text(", ".join(tracker.get_dependencies(resource)))
        )

    return table


def render_refs(refs: list[ResourceRef]) -> Table:
    """Render a table of ``Ref``/``Fn::GetAtt`` occurrences."""
    table = Table(title="References", show_lines=False)
    table.add_column("Path")
    table.add_column("Function", style="dim")
    table.add_column("Target", style="cyan")
    table.add_column("Attribute", style="green")

    for ref in refs:
        function = "Ref" if ref.attribute is None else "Fn::GetAtt"
        table.add_row(
            Text(ref.source_path or "<root>"),
            function,
            Text(ref.logical_id),
            Text(ref.attribute or ""),
        )

    return table
