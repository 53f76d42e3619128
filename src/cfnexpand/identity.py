"""Look up the live deployment identity to seed pseudo-parameters."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cfnexpand.context import DEFAULT_REGION

if TYPE_CHECKING:
    from mypy_boto3_sts import STSClient

LOG = logging.getLogger(__name__)

_ARN_RE = re.compile(r"arn:aws[a-zA-Z-]*:[a-zA-Z0-9-]*:\S+")
_ACCOUNT_RE = re.compile(r"\b\d{12}\b")

_URL_SUFFIXES = {
    "aws-cn": "amazonaws.com.cn",
    "aws-iso": "c2s.ic.gov",
    "aws-iso-b": "sc2s.sgov.gov",
}
_DEFAULT_URL_SUFFIX = "amazonaws.com"

_RETRY_CONFIG = Config(retries={"max_attempts": 5, "mode": "adaptive"})


class IdentityError(Exception):
    """Raised when the caller identity cannot be determined."""


def sanitize_error(msg: str) -> str:
    """Strip ARNs and AWS account IDs from error messages."""
    msg = _ARN_RE.sub("arn:***", msg)
    msg = _ACCOUNT_RE.sub("***", msg)
    return msg


def partition_from_arn(arn: str) -> str:
    parts = arn.split(":")
    if len(parts) < 2 or parts[0] != "arn" or not parts[1]:
        raise IdentityError(f"Not an ARN: {sanitize_error(arn)!r}")
    return parts[1]


def url_suffix_for_partition(partition: str) -> str:
    return _URL_SUFFIXES.get(partition, _DEFAULT_URL_SUFFIX)


def _make_client(profile: str | None, region: str | None) -> tuple[STSClient, str]:
    session = boto3.Session(profile_name=profile, region_name=region)
    resolved_region = session.region_name or DEFAULT_REGION
    client = session.client("sts", region_name=resolved_region, config=_RETRY_CONFIG)
    return client, resolved_region  # type: ignore[return-value]


def fetch_pseudo_parameters(
    profile: str | None = None,
    region: str | None = None,
    stack_name: str | None = None,
) -> dict[str, str]:
    """Build pseudo-parameter values for the current AWS caller.

    Args:
        profile: AWS named profile to use.
        region: AWS region override; falls back to the session's region and
            then ``us-east-1``.
        stack_name: When given, ``AWS::StackName`` and ``AWS::StackId`` are
            included as well.

    Returns:
        A dict suitable for :meth:`ResolveContext.set_pseudo_parameter`.

    Raises:
        IdentityError: On any AWS API error.
    """
    try:
        client, resolved_region = _make_client(profile, region)
        identity = client.get_caller_identity()
    except (ClientError, BotoCoreError) as exc:
        sanitized = sanitize_error(str(exc))
        raise IdentityError(f"Failed to look up caller identity: {sanitized}") from exc

    account_id = identity["Account"]
    partition = partition_from_arn(identity["Arn"])
    LOG.info("Using deployment identity in partition %s, region %s", partition, resolved_region)

    pseudo = {
        "AWS::AccountId": account_id,
        "AWS::Region": resolved_region,
        "AWS::Partition": partition,
        "AWS::URLSuffix": url_suffix_for_partition(partition),
    }
    if stack_name:
        pseudo["AWS::StackName"] = stack_name
        pseudo["AWS::StackId"] = (
            f"arn:{partition}:cloudformation:{resolved_region}:{account_id}:"
            f"stack/{stack_name}/guid"
        )
    return pseudo
