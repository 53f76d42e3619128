"""CLI entry point for cfnexpand."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import Any, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cfnexpand import __version__
from cfnexpand.actions import IntrinsicError
from cfnexpand.context import ResolveContext
from cfnexpand.dependencies import CircularDependencyError, collect_resource_refs
from cfnexpand.formatters import render_dependency_tree, render_order, render_refs
from cfnexpand.identity import IdentityError, fetch_pseudo_parameters
from cfnexpand.models import Template
from cfnexpand.resolver import Resolver
from cfnexpand.ssm import SSMLookupError, fetch_ssm_parameter_values

console = Console()
err_console = Console(stderr=True)


def _abort(msg: str) -> NoReturn:
    err_console.print(f"[bold red]Error:[/] {escape(msg)}")
    sys.exit(1)


def _parse_pairs(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, str]:
    """Turn repeated ``KEY=VALUE`` options into a dict."""
    pairs: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", ctx=ctx, param=param)
        pairs[key] = value
    return pairs


def _parse_conditions(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> dict[str, bool]:
    conditions: dict[str, bool] = {}
    for name, value in _parse_pairs(ctx, param, values).items():
        lowered = value.lower()
        if lowered not in ("true", "false"):
            raise click.BadParameter(
                f"condition {name!r} must be true or false, got {value!r}", ctx=ctx, param=param
            )
        conditions[name] = lowered == "true"
    return conditions


def _load_template(path: str) -> Template:
    try:
        with open(path, encoding="utf-8") as fh:
            document = json.load(fh)
        return Template.from_dict(document)
    except json.JSONDecodeError as exc:
        _abort(f"{path} is not valid JSON: {exc}")
    except ValueError as exc:
        _abort(f"{path}: {exc}")


def _resolution_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that resolves a template."""
    options = [
        click.argument("template_file", type=click.Path(exists=True, dir_okay=False)),
        click.option(
            "--parameter", "-p", "parameters", multiple=True, callback=_parse_pairs,
            metavar="KEY=VALUE", help="Override a template parameter (repeatable).",
        ),
        click.option(
            "--pseudo", "pseudo", multiple=True, callback=_parse_pairs,
            metavar="KEY=VALUE", help="Override a pseudo-parameter, e.g. AWS::Region=eu-west-1.",
        ),
        click.option(
            "--condition", "conditions", multiple=True, callback=_parse_conditions,
            metavar="NAME=true|false", help="Known condition result (repeatable).",
        ),
        click.option(
            "--rename", "renames", multiple=True, callback=_parse_pairs,
            metavar="OLD=NEW", help="Rename a resource logical ID (repeatable).",
        ),
        click.option(
            "--placeholder", "placeholders", multiple=True,
            help="Argument value that must never be resolved (repeatable).",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_resolver(
    template: Template,
    parameters: dict[str, str],
    pseudo: dict[str, str],
    conditions: dict[str, bool],
    renames: dict[str, str],
    placeholders: tuple[str, ...],
) -> Resolver:
    context = ResolveContext(template)
    for name, value in pseudo.items():
        context.set_pseudo_parameter(name, value)
    for name, value in parameters.items():
        context.set_parameter(name, value)
    for name, value in conditions.items():
        context.set_condition(name, value)
    return Resolver(context, logical_id_map=renames, placeholders=placeholders)


def _resolve_or_abort(resolver: Resolver, template: Template) -> dict[str, Any]:
    try:
        resolved = resolver.resolve_template(template)
    except IntrinsicError as exc:
        _abort(str(exc))
    return resolved or {}


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.version_option(__version__, "--version", "-V")
def main(verbose: bool) -> None:
    """Expand CloudFormation intrinsic functions in JSON templates.

    \b
    Examples:
      cfnexpand resolve template.json
      cfnexpand resolve -p Stage=prod --condition IsProd=true template.json
      cfnexpand order template.json
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


@main.command("resolve")
@_resolution_options
@click.option("--from-aws", is_flag=True, default=False,
              help="Take pseudo-parameters from the current AWS identity.")
@click.option("--resolve-ssm", is_flag=True, default=False,
              help="Fetch values of AWS::SSM::Parameter::Value<...> parameters.")
@click.option("--stack-name", default=None, help="Stack name for AWS::StackName/AWS::StackId.")
@click.option("--profile", default=None, help="AWS named profile.")
@click.option("--region", default=None, help="AWS region.")
@click.option("--output-file", "-o", type=click.Path(dir_okay=False), default=None,
              help="Write the resolved template here instead of stdout.")
def resolve_cmd(
    template_file: str,
    parameters: dict[str, str],
    pseudo: dict[str, str],
    conditions: dict[str, bool],
    renames: dict[str, str],
    placeholders: tuple[str, ...],
    from_aws: bool,
    resolve_ssm: bool,
    stack_name: str | None,
    profile: str | None,
    region: str | None,
    output_file: str | None,
) -> None:
    """Resolve every intrinsic in TEMPLATE_FILE and print the result as JSON.

    \b
    Examples:
      cfnexpand resolve template.json
      cfnexpand resolve --from-aws --stack-name my-stack template.json
      cfnexpand resolve --resolve-ssm -o resolved.json template.json
    """
    template = _load_template(template_file)

    identity: dict[str, str] = {}
    if from_aws:
        try:
            identity = fetch_pseudo_parameters(
                profile=profile, region=region, stack_name=stack_name
            )
        except IdentityError as exc:
            _abort(str(exc))
    elif stack_name:
        identity["AWS::StackName"] = stack_name
    if region and not from_aws:
        identity["AWS::Region"] = region

    if resolve_ssm:
        try:
            ssm_values = fetch_ssm_parameter_values(
                template, overrides=parameters, profile=profile, region=region
            )
        except SSMLookupError as exc:
            _abort(str(exc))
        parameters = {**parameters, **ssm_values}

    resolver = _build_resolver(
        template, parameters, {**identity, **pseudo}, conditions, renames, placeholders
    )
    resolved = _resolve_or_abort(resolver, template)
    rendered = json.dumps(resolved, indent=2)

    if output_file:
        with open(output_file, "w", encoding="utf-8") as fh:
            fh.write(rendered + "\n")
        console.print(f"[bold green]Wrote[/] {output_file}")
    else:
        click.echo(rendered)


@main.command("deps")
@_resolution_options
@click.option(
    "--output",
    type=click.Choice(["tree", "json"]),
    default="tree",
    help="Output format (default: tree).",
)
def deps_cmd(
    template_file: str,
    parameters: dict[str, str],
    pseudo: dict[str, str],
    conditions: dict[str, bool],
    renames: dict[str, str],
    placeholders: tuple[str, ...],
    output: str,
) -> None:
    """Show which resources reference which in TEMPLATE_FILE."""
    template = _load_template(template_file)
    resolver = _build_resolver(template, parameters, pseudo, conditions, renames, placeholders)
    _resolve_or_abort(resolver, template)

    if output == "json":
        click.echo(json.dumps(resolver.dependencies.all_dependencies(), indent=2))
        return

    resources = [resolver.map_logical_id(r) for r in template.resources or {}]
    console.print(render_dependency_tree(resolver.dependencies, resources))


@main.command("order")
@_resolution_options
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format (default: table).",
)
def order_cmd(
    template_file: str,
    parameters: dict[str, str],
    pseudo: dict[str, str],
    conditions: dict[str, bool],
    renames: dict[str, str],
    placeholders: tuple[str, ...],
    output: str,
) -> None:
    """Print the order in which TEMPLATE_FILE's resources can be processed."""
    template = _load_template(template_file)
    resolver = _build_resolver(template, parameters, pseudo, conditions, renames, placeholders)
    _resolve_or_abort(resolver, template)

    try:
        order = resolver.resource_order(template)
    except CircularDependencyError as exc:
        _abort(f"{exc} ({' -> '.join(exc.cycle)})")

    if output == "json":
        click.echo(json.dumps(order, indent=2))
    else:
        console.print(render_order(order, resolver.dependencies))


@main.command("refs")
@click.argument("template_file", type=click.Path(exists=True, dir_okay=False))
def refs_cmd(template_file: str) -> None:
    """List every Ref and Fn::GetAtt in TEMPLATE_FILE without resolving anything."""
    template = _load_template(template_file)
    refs = collect_resource_refs(template.to_dict())
    if not refs:
        console.print("[yellow]No references found.[/]")
        return
    console.print(render_refs(refs))
