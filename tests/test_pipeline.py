"""Tests for pipeline.py module."""

from unittest.mock import MagicMock

import pytest

from helmstate.context import BootstrapStage, ContextBootstrapper
from helmstate.exceptions import ContextSetupError, NamespaceSetupError, NoAppsDefined, ValidationError
from helmstate.loader import load_state
from helmstate.models import CommandResult
from helmstate.pipeline import Pipeline
from helmstate.substitution import Substitutor

OK = CommandResult(exit_code=0, stdout="", stderr="")


class FakeKubectl:
    """Records kubectl calls; the first use-context fails so the context is bootstrapped."""

    def __init__(self, failing: str = "") -> None:
        self.calls: list[list[str]] = []
        self.failing = failing
        self._context_known = False

    def run(self, program, args, **kwargs):
        self.calls.append(args)
        if args[:2] == ["config", "use-context"] and not self._context_known:
            return CommandResult(exit_code=1, stdout="", stderr="no context exists")
        if args[:2] == ["config", "set-context"]:
            self._context_known = True
        if self.failing and self.failing in args:
            return CommandResult(exit_code=1, stdout="", stderr=f"{self.failing} failed")
        return OK

    def verbs(self, verb: str) -> list[list[str]]:
        return [args for args in self.calls if args[0] == verb]


@pytest.fixture
def pipeline_for(options):
    """Build a Pipeline around a fake kubectl with local certificate readers."""

    def _build(kubectl: FakeKubectl) -> Pipeline:
        return Pipeline(options, runner=kubectl, readers={}, parameter_store=MagicMock())

    return _build


class TestEndToEnd:
    """Tests running every stage against a fake cluster."""

    def test_full_run(self, state_data, write_state, fixture_files, pipeline_for, options):
        """Test one namespace with one label against an empty cluster."""
        kubectl = FakeKubectl()
        pipeline = pipeline_for(kubectl)

        report = pipeline.run(write_state(state_data))

        assert report.owned == {}
        assert kubectl.verbs("create") == [["create", "namespace", "prod"]]
        assert kubectl.verbs("label") == [["label", "--overwrite", "namespace/prod", "team=infra"]]
        assert kubectl.verbs("get") == [["get", "secret", "-n", "prod", "-l", "MANAGED-BY=HELMSTATE"]]
        assert (options.work_dir / "ca.crt").exists()

    def test_context_bootstrapped_before_namespaces(self, state_data, write_state, fixture_files, pipeline_for):
        """Test the context is registered before any namespace call."""
        kubectl = FakeKubectl()

        pipeline_for(kubectl).run(write_state(state_data))

        order = [args[1] if args[0] == "config" else args[0] for args in kubectl.calls]
        assert order == [
            "use-context",
            "set-credentials",
            "set-cluster",
            "set-context",
            "use-context",
            "create",
            "label",
            "get",
        ]

    def test_bootstrap_stage_done(self, state_data, write_state, fixture_files, options):
        """Test a successful bootstrap reaches the done stage."""
        kubectl = FakeKubectl()
        document = load_state(write_state(state_data), options, Substitutor(options, MagicMock()))
        bootstrapper = ContextBootstrapper(document, options, kubectl, {})

        assert bootstrapper.ensure_context() == (True, "")
        assert bootstrapper.stage is BootstrapStage.DONE


class TestFailures:
    """Tests for stage failures turning into exceptions."""

    def test_validation_failure(self, state_data, write_state, fixture_files, pipeline_for):
        """Test an invalid document raises ValidationError before any kubectl call."""
        state_data["namespaces"] = {}
        kubectl = FakeKubectl()

        with pytest.raises(ValidationError) as exc_info:
            pipeline_for(kubectl).run(write_state(state_data))

        assert "namespaces validation failed" in str(exc_info.value)
        assert kubectl.calls == []

    def test_no_apps(self, state_data, write_state, fixture_files, pipeline_for):
        """Test an empty app map ends the run early."""
        state_data["apps"] = {}

        with pytest.raises(NoAppsDefined):
            pipeline_for(FakeKubectl()).run(write_state(state_data))

    def test_context_failure(self, state_data, write_state, fixture_files, pipeline_for):
        """Test a failing context bootstrap raises ContextSetupError and stops."""
        kubectl = FakeKubectl(failing="set-cluster")

        with pytest.raises(ContextSetupError) as exc_info:
            pipeline_for(kubectl).run(write_state(state_data))

        assert "test-context" in str(exc_info.value)
        assert kubectl.verbs("create") == []

    def test_namespace_failure(self, state_data, write_state, fixture_files, pipeline_for):
        """Test a failing LimitRange raises NamespaceSetupError and skips discovery."""
        state_data["namespaces"]["prod"]["limits"] = [{"type": "Container", "max": {"cpu": "1"}}]
        kubectl = FakeKubectl(failing="apply")

        with pytest.raises(NamespaceSetupError):
            pipeline_for(kubectl).run(write_state(state_data))

        assert kubectl.verbs("get") == []


class TestWebhook:
    """Tests for the webhook exposed to the CLI."""

    def test_no_document(self, options):
        """Test no webhook is known before loading."""
        assert Pipeline(options, runner=MagicMock(), readers={}, parameter_store=MagicMock()).webhook == ""

    def test_valid_webhook(self, state_data, write_state, fixture_files, pipeline_for):
        """Test the webhook of the loaded document is exposed."""
        state_data["settings"]["slackWebhook"] = "https://hooks.slack.com/services/T/B/X"
        pipeline = pipeline_for(FakeKubectl())

        pipeline.load(write_state(state_data))

        assert pipeline.webhook == "https://hooks.slack.com/services/T/B/X"
