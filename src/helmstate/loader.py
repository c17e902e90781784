"""Desired state file loading.

Reads a YAML or TOML state file, substitutes variables, decodes it
strictly into a StateDocument and resolves every path it references.
"""

import tomllib
from pathlib import Path
from typing import Any

import yaml
from icecream import ic

from helmstate import console
from helmstate.config import DEFAULT_STORAGE_BACKEND, INCUBATOR_HELM_REPO, STABLE_HELM_REPO, RunOptions
from helmstate.exceptions import StateFileError
from helmstate.models import StateDocument
from helmstate.paths import resolve_paths, substitute_values_files
from helmstate.substitution import Substitutor

_YAML_SUFFIXES = (".yaml", ".yml")
_TOML_SUFFIXES = (".toml",)


def _parse(text: str, path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix in _TOML_SUFFIXES:
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as err:
            raise StateFileError(f"State file '{path}' contains malformed TOML: {err}") from err
    if suffix in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise StateFileError(f"State file '{path}' contains malformed YAML: {err}") from err
    raise StateFileError("State file does not have toml/yaml extension.")


def add_default_repos(document: StateDocument, options: RunOptions) -> None:
    """Add the stable and incubator helm repositories unless disabled."""
    if options.no_default_repos:
        console.info("Default helm repo set disabled, 'stable' and 'incubator' repos unset.")
        return
    if not document.helm_repos:
        console.info("No helm repos provided, using the default 'stable' and 'incubator' repos.")
    document.helm_repos.setdefault("stable", STABLE_HELM_REPO)
    document.helm_repos.setdefault("incubator", INCUBATOR_HELM_REPO)


def load_state(state_file: str | Path, options: RunOptions, substitutor: Substitutor) -> StateDocument:
    """Load and resolve the desired state stored in ``state_file``.

    Args:
        state_file: Path to a .yaml, .yml or .toml desired state file.
        options: The run options.
        substitutor: Substitutor applied to the file and its values files.

    Returns:
        The fully resolved desired state.

    Raises:
        StateFileError: If the file cannot be read, parsed or decoded.
        ParameterFetchError: If an SSM placeholder cannot be resolved.

    """
    path = Path(state_file)
    if path.suffix.lower() not in _YAML_SUFFIXES + _TOML_SUFFIXES:
        raise StateFileError("State file does not have toml/yaml extension.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise StateFileError(f"State file '{path}' cannot be read: {err.strerror}") from err
    except UnicodeDecodeError as err:
        raise StateFileError(f"State file '{path}' is not valid UTF-8 text: {err.reason}") from err

    console.debug(f"Substituting variables in file: {path}", verbose=options.verbose)
    text = substitutor.substitute(text)

    data = _parse(text, path)
    if data is None:
        data = {}
    document = StateDocument.from_dict(data)

    add_default_repos(document, options)
    resolve_paths(document, path)
    substitute_values_files(document, substitutor, options.temp_dir)
    ic(document)

    console.success(
        f"Parsed {console.highlight(str(path))} successfully and found "
        f"{console.highlight(str(len(document.apps)))} apps"
    )
    return document


def describe_state(document: StateDocument) -> None:
    """Print a summary of the desired state."""
    console.summary_panel("Metadata", document.metadata)
    console.summary_panel("Certificates", document.certificates)
    settings = document.settings
    console.summary_panel(
        "Settings",
        {
            "kubeContext": settings.kube_context,
            "clusterURI": settings.cluster_uri,
            "username": settings.username,
            "bearerToken": str(settings.bearer_token),
            "storageBackend": settings.storage_backend or DEFAULT_STORAGE_BACKEND,
            "slackWebhook": "set" if settings.slack_webhook else "",
            "reverseDelete": str(settings.reverse_delete),
        },
    )
    console.summary_panel(
        "Namespaces",
        {name: f"protected = {ns.protected}" for name, ns in document.namespaces.items()},
    )
    console.summary_panel("Repositories", document.helm_repos)
    console.summary_panel(
        "Applications",
        {
            label: f"{app.name} ({app.chart} {app.version}) in {app.namespace}"
            for label, app in document.apps.items()
        },
    )
