"""Tests for cfnexpand.cli (Click commands via CliRunner)."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from cfnexpand import __version__
from cfnexpand.cli import main

AWS_IDENTITY = {
    "AWS::AccountId": "111122223333",
    "AWS::Region": "eu-west-1",
    "AWS::Partition": "aws",
    "AWS::URLSuffix": "amazonaws.com",
    "AWS::StackName": "orders",
    "AWS::StackId": "arn:aws:cloudformation:eu-west-1:111122223333:stack/orders/guid",
}


@pytest.fixture()
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def wide_consoles():
    """Keep Rich from wrapping long paths in captured output."""
    with (
        patch("cfnexpand.cli.console", Console(force_terminal=False, width=300)),
        patch(
            "cfnexpand.cli.err_console",
            Console(stderr=True, force_terminal=False, width=300),
        ),
    ):
        yield


@pytest.fixture()
def template_file(template_path):
    return str(template_path)


def _write(tmp_path, document, name="template.json") -> str:
    path = tmp_path / name
    path.write_text(document if isinstance(document, str) else json.dumps(document))
    return str(path)


class TestMainCommand:
    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Usage:" in result.output
        for command in ("resolve", "deps", "order", "refs"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_verbose(self, runner, template_file):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            result = runner.invoke(main, ["--verbose", "order", "--output", "json", template_file])
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)
        assert result.exit_code == 0


class TestResolveCommand:
    def test_default_context(self, runner, template_file):
        result = runner.invoke(main, ["resolve", template_file])
        assert result.exit_code == 0
        data = json.loads(result.output)
        resources = data["Resources"]
        assert resources["Table"]["Properties"]["TableName"] == "sam-app-dev-orders"
        assert resources["Function"]["Properties"]["ImageId"] == "ami-12345"
        assert data["Outputs"]["FunctionArn"]["Export"]["Name"] == "sam-app-FunctionArn"

    def test_parameter_and_condition(self, runner, template_file):
        result = runner.invoke(
            main, ["resolve", "-p", "Stage=prod", "--condition", "IsProd=true", template_file]
        )
        assert result.exit_code == 0
        function = json.loads(result.output)["Resources"]["Function"]["Properties"]
        assert function["Environment"]["Variables"]["STAGE"] == "prod"
        assert "DEBUG" not in function["Environment"]["Variables"]

    def test_pseudo_override(self, runner, template_file):
        result = runner.invoke(
            main, ["resolve", "--pseudo", "AWS::StackName=shop", template_file]
        )
        assert result.exit_code == 0
        table = json.loads(result.output)["Resources"]["Table"]
        assert table["Properties"]["TableName"] == "shop-dev-orders"

    def test_region_without_aws(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "--region", "eu-west-1", template_file])
        assert result.exit_code == 0
        function = json.loads(result.output)["Resources"]["Function"]["Properties"]
        assert function["ImageId"] == "ami-67890"

    def test_stack_name_without_aws(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "--stack-name", "shop", template_file])
        assert result.exit_code == 0
        table = json.loads(result.output)["Resources"]["Table"]
        assert table["Properties"]["TableName"] == "shop-dev-orders"

    def test_rename(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "--rename", "Role=ServiceRole", template_file])
        assert result.exit_code == 0
        resources = json.loads(result.output)["Resources"]
        assert "ServiceRole" in resources
        assert resources["Function"]["DependsOn"] == "ServiceRole"

    def test_placeholder(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "--placeholder", "Stage", template_file])
        assert result.exit_code == 0
        variables = json.loads(result.output)["Resources"]["Function"]["Properties"][
            "Environment"
        ]["Variables"]
        assert variables["STAGE"] == {"Ref": "Stage"}

    def test_from_aws(self, runner, template_file):
        with patch(
            "cfnexpand.cli.fetch_pseudo_parameters", return_value=AWS_IDENTITY
        ) as mock_fetch:
            result = runner.invoke(
                main, ["resolve", "--from-aws", "--stack-name", "orders", template_file]
            )
        assert result.exit_code == 0
        mock_fetch.assert_called_once_with(profile=None, region=None, stack_name="orders")
        resources = json.loads(result.output)["Resources"]
        assert resources["Table"]["Properties"]["TableName"] == "orders-dev-orders"
        assert resources["Function"]["Properties"]["ImageId"] == "ami-67890"

    def test_from_aws_pseudo_override_wins(self, runner, template_file):
        with patch("cfnexpand.cli.fetch_pseudo_parameters", return_value=AWS_IDENTITY):
            result = runner.invoke(
                main,
                ["resolve", "--from-aws", "--pseudo", "AWS::Region=us-east-1", template_file],
            )
        assert result.exit_code == 0
        function = json.loads(result.output)["Resources"]["Function"]["Properties"]
        assert function["ImageId"] == "ami-12345"

    def test_from_aws_error(self, runner, template_file):
        from cfnexpand.identity import IdentityError

        with patch(
            "cfnexpand.cli.fetch_pseudo_parameters",
            side_effect=IdentityError("Failed to look up caller identity: expired"),
        ):
            result = runner.invoke(main, ["resolve", "--from-aws", template_file])
        assert result.exit_code == 1
        assert "Failed to look up caller identity" in result.output

    def test_resolve_ssm(self, runner, template_file):
        with patch(
            "cfnexpand.cli.fetch_ssm_parameter_values", return_value={"Stage": "prod"}
        ) as mock_fetch:
            result = runner.invoke(main, ["resolve", "--resolve-ssm", template_file])
        assert result.exit_code == 0
        mock_fetch.assert_called_once()
        role = json.loads(result.output)["Resources"]["Role"]
        assert role["Properties"]["RoleName"] == "prod-orders-role"

    def test_resolve_ssm_error(self, runner, template_file):
        from cfnexpand.ssm import SSMLookupError

        with patch(
            "cfnexpand.cli.fetch_ssm_parameter_values",
            side_effect=SSMLookupError("SSM parameter(s) not found: /images/latest"),
        ):
            result = runner.invoke(main, ["resolve", "--resolve-ssm", template_file])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_output_file(self, runner, template_file, tmp_path):
        out = tmp_path / "resolved.json"
        result = runner.invoke(main, ["resolve", "-o", str(out), template_file])
        assert result.exit_code == 0
        data = json.loads(out.read_text())
        assert data["Resources"]["Role"]["Properties"]["RoleName"] == "dev-orders-role"

    def test_bad_parameter_pair(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "-p", "Stage", template_file])
        assert result.exit_code != 0
        assert "KEY=VALUE" in result.output

    def test_bad_condition_value(self, runner, template_file):
        result = runner.invoke(main, ["resolve", "--condition", "IsProd=maybe", template_file])
        assert result.exit_code != 0

    def test_missing_file(self, runner):
        result = runner.invoke(main, ["resolve", "/no/such/template.json"])
        assert result.exit_code != 0

    def test_invalid_json(self, runner, tmp_path):
        result = runner.invoke(main, ["resolve", _write(tmp_path, "{not json")])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_non_mapping_template(self, runner, tmp_path):
        result = runner.invoke(main, ["resolve", _write(tmp_path, [1, 2])])
        assert result.exit_code == 1
        assert "Template must be a mapping" in result.output

    def test_intrinsic_error(self, runner, tmp_path):
        document = {
            "Resources": {
                "X": {"Type": "T", "Properties": {"P": {"Fn::GetAtt": ["Nope", "Arn"]}}}
            }
        }
        result = runner.invoke(main, ["resolve", _write(tmp_path, document)])
        assert result.exit_code == 1
        assert "resource 'Nope' not found" in result.output


class TestDepsCommand:
    def test_json(self, runner, template_file):
        result = runner.invoke(main, ["deps", "--output", "json", template_file])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"Function": ["Role", "Table"]}

    def test_tree(self, runner, template_file):
        result = runner.invoke(main, ["deps", template_file])
        assert result.exit_code == 0
        assert "Resources" in result.output
        assert "Function" in result.output
        assert "LogGroup" in result.output

    def test_rename_applies(self, runner, template_file):
        result = runner.invoke(
            main, ["deps", "--output", "json", "--rename", "Table=Orders", template_file]
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == {"Function": ["Orders", "Role"]}


class TestOrderCommand:
    def test_json(self, runner, template_file):
        result = runner.invoke(main, ["order", "--output", "json", template_file])
        assert result.exit_code == 0
        assert json.loads(result.output) == ["Role", "Table", "Function", "LogGroup"]

    def test_table(self, runner, template_file):
        result = runner.invoke(main, ["order", template_file])
        assert result.exit_code == 0
        assert "Resource order" in result.output

    def test_cycle(self, runner, cycle_path):
        result = runner.invoke(main, ["order", str(cycle_path)])
        assert result.exit_code == 1
        assert "circular dependency" in result.output


class TestRefsCommand:
    def test_lists_refs(self, runner, template_file):
        result = runner.invoke(main, ["refs", template_file])
        assert result.exit_code == 0
        assert "References" in result.output
        assert "Resources.Function.Properties.Role" in result.output
        assert "Fn::GetAtt" in result.output

    def test_no_refs(self, runner, tmp_path):
        document = {"Resources": {"Bucket": {"Type": "AWS::S3::Bucket"}}}
        result = runner.invoke(main, ["refs", _write(tmp_path, document)])
        assert result.exit_code == 0
        assert "No references found." in result.output
