"""Resolve ``AWS::SSM::Parameter::Value<...>`` template parameters from SSM."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cfnexpand.identity import sanitize_error
from cfnexpand.models import Template

if TYPE_CHECKING:
    from mypy_boto3_ssm import SSMClient

LOG = logging.getLogger(__name__)

# get_parameters accepts at most 10 names per call.
_BATCH_SIZE = 10

_RETRY_CONFIG = Config(retries={"max_attempts": 5, "mode": "adaptive"})


class SSMLookupError(Exception):
    """Raised when SSM-typed parameter values cannot be fetched."""


def _make_client(profile: str | None, region: str | None) -> SSMClient:
    session = boto3.Session(profile_name=profile, region_name=region)
    return session.client("ssm", config=_RETRY_CONFIG)  # type: ignore[return-value]


def ssm_parameter_names(
    template: Template, overrides: dict[str, Any] | None = None
) -> dict[str, str]:
    """Map each SSM-typed template parameter to the SSM name it points at.

    An override (e.g. from ``--parameter``) wins over the declared default.
    Parameters with neither are skipped.
    """
    overrides = overrides or {}
    names: dict[str, str] = {}
    for name, param in (template.parameters or {}).items():
        if not param.is_ssm_parameter:
            continue
        if name in overrides:
            names[name] = str(overrides[name])
        elif param.has_default and param.default is not None:
            names[name] = str(param.default)
        else:
            LOG.warning("SSM parameter %s has no default and no override; skipping", name)
    return names


def fetch_ssm_parameter_values(
    template: Template | dict[str, Any],
    overrides: dict[str, Any] | None = None,
    profile: str | None = None,
    region: str | None = None,
) -> dict[str, Any]:
    """Fetch current values for the template's SSM-typed parameters.

    Args:
        template: The template declaring the parameters.
        overrides: Parameter values supplied by the caller; for SSM-typed
            parameters these are SSM names.
        profile: AWS named profile to use.
        region: AWS region override.

    Returns:
        ``{template_parameter_name: value}``.  ``List<...>`` types come back
        as lists split on commas.

    Raises:
        SSMLookupError: On any AWS API error or when an SSM name does not exist.
    """
    if not isinstance(template, Template):
        template = Template.from_dict(template)

    names = ssm_parameter_names(template, overrides)
    if not names:
        return {}

    client = _make_client(profile, region)
    ssm_names = sorted(set(names.values()))
    found: dict[str, str] = {}
    invalid: list[str] = []

    try:
        for start in range(0, len(ssm_names), _BATCH_SIZE):
            batch = ssm_names[start : start + _BATCH_SIZE]
            response = client.get_parameters(Names=batch, WithDecryption=False)
            for item in response.get("Parameters", []):
                found[item["Name"]] = item.get("Value", "")
            invalid.extend(response.get("InvalidParameters", []))
    except (ClientError, BotoCoreError) as exc:
        sanitized = sanitize_error(str(exc))
        raise SSMLookupError(f"Failed to fetch parameters from SSM: {sanitized}") from exc

    invalid.extend(n for n in ssm_names if n not in found and n not in invalid)
    if invalid:
        raise SSMLookupError(f"SSM parameter(s) not found: {', '.join(sorted(invalid))}")

    values: dict[str, Any] = {}
    for name, ssm_name in names.items():
        value = found[ssm_name]
        if "List<" in template.parameters[name].type:  # type: ignore[index]
            values[name] = value.split(",")
        else:
            values[name] = value
    LOG.info("Resolved %d SSM-typed parameter(s)", len(values))
    return values
