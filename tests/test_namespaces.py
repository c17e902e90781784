"""Tests for namespaces.py module."""

import os
from unittest.mock import patch

import pytest
import yaml

from helmstate.config import RunOptions
from helmstate.models import CommandResult, LimitRule, Resources, StateDocument
from helmstate.namespaces import NamespaceReconciler, build_limit_range

ALREADY_EXISTS = CommandResult(
    exit_code=1, stdout="", stderr='Error from server (AlreadyExists): namespaces "prod" already exists'
)
FAILED = CommandResult(exit_code=1, stdout="", stderr="forbidden")


@pytest.fixture
def document():
    """Single namespace with one label and no limits."""
    return StateDocument.from_dict(
        {
            "namespaces": {"prod": {"labels": {"team": "infra"}}},
            "apps": {"myapp": {"name": "myapp", "namespace": "prod"}},
        }
    )


def _commands(runner) -> list[list[str]]:
    return [call.args[1] for call in runner.run.call_args_list]


class TestBuildLimitRange:
    """Tests for LimitRange rendering."""

    def test_manifest_structure(self):
        """Test the manifest parses into a LimitRange with the rules under spec.limits."""
        rules = [
            LimitRule(type="Container", default=Resources(cpu="300m", memory="200Mi")),
            LimitRule(type="Pod", max=Resources(cpu="2")),
        ]

        manifest = yaml.safe_load(build_limit_range(rules))

        assert manifest["kind"] == "LimitRange"
        assert manifest["metadata"]["name"] == "limit-range"
        assert manifest["spec"]["limits"] == [
            {"default": {"cpu": "300m", "memory": "200Mi"}, "type": "Container"},
            {"max": {"cpu": "2"}, "type": "Pod"},
        ]


class TestReconcile:
    """Tests for namespace reconciliation."""

    def test_create_and_label(self, document, mock_runner):
        """Test one create and one label call for a single labeled namespace."""
        assert NamespaceReconciler(document, RunOptions(), mock_runner).reconcile() == (True, "")

        assert _commands(mock_runner) == [
            ["create", "namespace", "prod"],
            ["label", "--overwrite", "namespace/prod", "team=infra"],
        ]

    def test_idempotent_rerun(self, document, mock_runner):
        """Test an existing namespace is not an error and labels are reapplied."""
        mock_runner.run.side_effect = [ALREADY_EXISTS, CommandResult(0, "", "")]

        with patch("helmstate.namespaces.console.warning") as mock_warning:
            assert NamespaceReconciler(document, RunOptions(), mock_runner).reconcile() == (True, "")

        mock_warning.assert_not_called()
        assert mock_runner.run.call_count == 2

    def test_create_failure_is_warning(self, document, mock_runner):
        """Test other create failures are logged and reconciliation goes on."""
        mock_runner.run.side_effect = [FAILED, CommandResult(0, "", "")]

        with patch("helmstate.namespaces.console.warning") as mock_warning:
            assert NamespaceReconciler(document, RunOptions(), mock_runner).reconcile() == (True, "")

        mock_warning.assert_called_once()

    def test_kubectl_errors_are_escaped(self, document, mock_runner):
        """Test kubectl error text is shown literally rather than as console markup."""
        denied = CommandResult(exit_code=1, stdout="", stderr="[bold]denied")
        mock_runner.run.side_effect = [denied, denied]

        with patch("helmstate.namespaces.console.warning") as mock_warning:
            NamespaceReconciler(document, RunOptions(), mock_runner).reconcile()

        messages = [call.args[0] for call in mock_warning.call_args_list]
        assert len(messages) == 2
        assert all("\\[bold]denied" in message for message in messages)

    def test_annotations(self, mock_runner):
        """Test annotations are applied one key at a time."""
        document = StateDocument.from_dict({"namespaces": {"prod": {"annotations": {"a": "1", "b": "2"}}}})

        NamespaceReconciler(document, RunOptions(), mock_runner).reconcile()

        assert _commands(mock_runner)[1:] == [
            ["annotate", "--overwrite", "namespace/prod", "a=1"],
            ["annotate", "--overwrite", "namespace/prod", "b=2"],
        ]

    def test_namespace_override(self, document, mock_runner):
        """Test only the override namespace is created and apps are moved into it."""
        reconciler = NamespaceReconciler(document, RunOptions(ns_override="staging"), mock_runner)

        assert reconciler.reconcile() == (True, "")

        assert _commands(mock_runner) == [["create", "namespace", "staging"]]
        assert document.apps["myapp"].namespace == "staging"


class TestSetLimits:
    """Tests for applying LimitRanges."""

    @pytest.fixture
    def rules(self):
        return [LimitRule(type="Container", max=Resources(memory="1Gi"))]

    def test_no_rules(self, mock_runner):
        """Test nothing is applied without rules."""
        assert NamespaceReconciler(StateDocument(), RunOptions(), mock_runner).set_limits("prod", []) == (True, "")
        mock_runner.run.assert_not_called()

    def test_apply_and_cleanup(self, mock_runner, rules):
        """Test the manifest is applied from a temp file that is removed afterwards."""
        seen = {}

        def _run(program, args, **kwargs):
            path = args[2]
            with open(path) as manifest:
                seen["path"] = path
                seen["content"] = manifest.read()
            return CommandResult(0, "", "")

        mock_runner.run.side_effect = _run

        reconciler = NamespaceReconciler(StateDocument(), RunOptions(), mock_runner)
        assert reconciler.set_limits("prod", rules) == (True, "")

        args = mock_runner.run.call_args.args[1]
        assert args[:2] == ["apply", "-f"]
        assert args[3:] == ["-n", "prod"]
        assert seen["path"].endswith("-LimitRange.yaml")
        assert "kind: LimitRange" in seen["content"]
        assert not os.path.exists(seen["path"])

    def test_failure_still_cleans_up(self, mock_runner, rules):
        """Test a failing apply reports the error and removes the temp file."""
        mock_runner.run.return_value = FAILED

        ok, message = NamespaceReconciler(StateDocument(), RunOptions(), mock_runner).set_limits("prod", rules)

        assert not ok
        assert "forbidden" in message
        path = mock_runner.run.call_args.args[1][2]
        assert not os.path.exists(path)

    def test_limit_failure_stops_reconcile(self, mock_runner):
        """Test a LimitRange failure is returned by reconcile."""
        document = StateDocument.from_dict(
            {"namespaces": {"prod": {"limits": [{"type": "Container", "max": {"cpu": "1"}}]}}}
        )
        mock_runner.run.side_effect = [CommandResult(0, "", ""), FAILED]

        ok, message = NamespaceReconciler(document, RunOptions(), mock_runner).reconcile()

        assert not ok
        assert "prod" in message
