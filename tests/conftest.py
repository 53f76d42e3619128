"""Shared pytest fixtures for cfnexpand tests."""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def _template_document() -> dict:
    with open(FIXTURES_DIR / "template.json") as fh:
        return json.load(fh)


@pytest.fixture()
def template_document(_template_document) -> dict:
    """A fresh copy of the sample template document."""
    return copy.deepcopy(_template_document)


@pytest.fixture()
def template_path() -> Path:
    return FIXTURES_DIR / "template.json"


@pytest.fixture()
def cycle_path() -> Path:
    return FIXTURES_DIR / "cycle.json"


@pytest.fixture()
def context(template_document):
    """A ResolveContext over the sample template."""
    from cfnexpand.context import ResolveContext

    return ResolveContext(template_document)


@pytest.fixture()
def resolver(context):
    from cfnexpand.resolver import Resolver

    return Resolver(context)


@pytest.fixture()
def aws_credentials():
    """Ensure moto doesn't try to use real AWS credentials."""
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
    os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
