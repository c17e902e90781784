"""Tests for loader.py module."""

from unittest.mock import MagicMock, patch

import pytest

from helmstate.config import INCUBATOR_HELM_REPO, STABLE_HELM_REPO, RunOptions
from helmstate.exceptions import StateFileError
from helmstate.loader import add_default_repos, describe_state, load_state
from helmstate.models import StateDocument
from helmstate.substitution import Substitutor

TOML_STATE = """
[settings]
kubeContext = "test-context"

[namespaces.prod]
protected = true

[apps.myapp]
name = "myapp"
namespace = "prod"
chart = "stable/myapp"
version = "1.0.0"
enabled = true
"""


@pytest.fixture
def substitutor(options):
    """Substitutor with a parameter store double."""
    return Substitutor(options, MagicMock())


class TestLoadState:
    """Tests for loading state files."""

    def test_load_yaml(self, state_data, write_state, fixture_files, options, substitutor):
        """Test a YAML state file is decoded and its paths resolved."""
        path = write_state(state_data)

        document = load_state(path, options, substitutor)

        assert list(document.namespaces) == ["prod"]
        assert document.apps["myapp"].chart == str(fixture_files["chart"])
        assert document.certificates["caCrt"] == str(fixture_files["ca_crt"])

    def test_load_toml(self, tmp_path, options, substitutor):
        """Test a TOML state file is decoded like a YAML one."""
        path = tmp_path / "state.toml"
        path.write_text(TOML_STATE)

        document = load_state(path, options, substitutor)

        assert document.settings.kube_context == "test-context"
        assert document.namespaces["prod"].protected is True
        assert document.apps["myapp"].chart == "stable/myapp"

    def test_env_substituted_before_parsing(self, state_data, write_state, options, substitutor, monkeypatch):
        """Test environment variables in the state file are expanded."""
        monkeypatch.setenv("CLUSTER_URI", "https://api.example.com")
        state_data["settings"]["clusterURI"] = "$CLUSTER_URI"
        path = write_state(state_data)

        document = load_state(path, options, substitutor)

        assert document.settings.cluster_uri == "https://api.example.com"

    def test_unsupported_extension(self, tmp_path, options, substitutor):
        """Test files without a yaml/toml extension are rejected."""
        path = tmp_path / "state.json"
        path.write_text("{}")

        with pytest.raises(StateFileError) as exc_info:
            load_state(path, options, substitutor)

        assert "toml/yaml" in str(exc_info.value)

    def test_missing_file(self, tmp_path, options, substitutor):
        """Test a missing state file raises StateFileError."""
        with pytest.raises(StateFileError):
            load_state(tmp_path / "absent.yaml", options, substitutor)

    def test_malformed_yaml(self, tmp_path, options, substitutor):
        """Test malformed YAML raises StateFileError."""
        path = tmp_path / "state.yaml"
        path.write_text("apps: [unclosed\n")

        with pytest.raises(StateFileError) as exc_info:
            load_state(path, options, substitutor)

        assert "malformed YAML" in str(exc_info.value)

    def test_binary_file(self, tmp_path, options, substitutor):
        """Test a state file that is not UTF-8 raises StateFileError."""
        path = tmp_path / "state.yaml"
        path.write_bytes(b"org: \xff\xfe\n")

        with pytest.raises(StateFileError) as exc_info:
            load_state(path, options, substitutor)

        assert "UTF-8" in str(exc_info.value)

    def test_unknown_field(self, state_data, write_state, options, substitutor):
        """Test unknown fields fail the load."""
        state_data["settings"]["tillerNamespace"] = "kube-system"
        path = write_state(state_data)

        with pytest.raises(StateFileError) as exc_info:
            load_state(path, options, substitutor)

        assert "settings.tillerNamespace" in str(exc_info.value)


class TestDefaultRepos:
    """Tests for the default helm repositories."""

    def test_added_when_missing(self):
        """Test stable and incubator are added next to declared repos."""
        document = StateDocument.from_dict({"helmRepos": {"mine": "https://charts.example.com"}})
        add_default_repos(document, RunOptions())

        assert document.helm_repos == {
            "mine": "https://charts.example.com",
            "stable": STABLE_HELM_REPO,
            "incubator": INCUBATOR_HELM_REPO,
        }

    def test_declared_repo_kept(self):
        """Test a declared stable repo is not overwritten."""
        document = StateDocument.from_dict({"helmRepos": {"stable": "https://mirror.example.com"}})
        add_default_repos(document, RunOptions())

        assert document.helm_repos["stable"] == "https://mirror.example.com"

    def test_disabled(self):
        """Test no_default_repos leaves repositories untouched."""
        document = StateDocument.from_dict({})
        add_default_repos(document, RunOptions(no_default_repos=True))

        assert document.helm_repos == {}


class TestDescribeState:
    """Tests for printing the desired state."""

    def test_prints_every_section(self, state_data):
        """Test one panel is printed per section."""
        with patch("helmstate.loader.console.summary_panel") as mock_panel:
            describe_state(StateDocument.from_dict(state_data))

        titles = [call.args[0] for call in mock_panel.call_args_list]
        assert titles == ["Metadata", "Certificates", "Settings", "Namespaces", "Repositories", "Applications"]
