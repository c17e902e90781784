"""Path resolution for a loaded desired state.

Relative paths in a state file are relative to the file itself. This module
rewrites them into absolute paths, leaving URIs (bucket links, absolute
paths) and repository-qualified chart names untouched.
"""

import os
import re
from pathlib import Path

from helmstate.models import AppEntry, StateDocument
from helmstate.substitution import Substitutor, substitute_env

_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def is_request_uri(value: str) -> bool:
    """Check whether ``value`` is an absolute URI or an absolute path.

    Args:
        value: The string to check.

    Returns:
        True for values such as ``https://host/x``, ``s3://bucket/key``
        or ``/abs/path``; False for relative paths and malformed URIs.

    """
    if not value or any(ord(c) < 0x20 or ord(c) == 0x7F for c in value):
        return False
    if value.startswith("/"):
        return True
    match = _SCHEME_PATTERN.match(value)
    if match is None:
        return False
    rest = value[match.end() :]
    if rest.startswith("//"):
        authority = rest[2:].split("/", 1)[0]
        if " " in authority:
            return False
    return True


def _absolute(base_dir: Path, value: str) -> str:
    return os.path.abspath(os.path.join(base_dir, value))


def _chart_repo(chart: str) -> str:
    """Return the leading directory of ``chart``, ``.`` for a bare name."""
    return os.path.dirname(chart) or "."


def _resolve_chart(app: AppEntry, document: StateDocument, base_dir: Path) -> None:
    if not app.chart:
        return
    # A local directory named like a repository is taken as repository-qualified.
    if document.is_known_repo(_chart_repo(app.chart)):
        return
    chart = substitute_env(app.chart)
    if not os.path.isabs(chart):
        chart = _absolute(base_dir, chart)
    app.chart = chart


def _resolve_app(app: AppEntry, document: StateDocument, base_dir: Path) -> None:
    if app.values_file:
        app.values_file = _absolute(base_dir, app.values_file)
    if app.secrets_file:
        app.secrets_file = _absolute(base_dir, app.secrets_file)
    app.values_files = [_absolute(base_dir, f) for f in app.values_files]
    app.secrets_files = [_absolute(base_dir, f) for f in app.secrets_files]
    _resolve_chart(app, document, base_dir)


def _resolve_location(value: str, base_dir: Path) -> str:
    if not value or is_request_uri(value):
        return value
    return _absolute(base_dir, value)


def resolve_paths(document: StateDocument, state_file: str | Path) -> None:
    """Make every relative path of ``document`` absolute, in place.

    Args:
        document: The freshly decoded desired state.
        state_file: The file the document was read from.

    """
    base_dir = Path(state_file).parent
    for app in document.apps.values():
        _resolve_app(app, document, base_dir)

    settings = document.settings
    settings.bearer_token_path = _resolve_location(settings.bearer_token_path, base_dir)
    settings.eyaml_private_key_path = _resolve_location(settings.eyaml_private_key_path, base_dir)
    settings.eyaml_public_key_path = _resolve_location(settings.eyaml_public_key_path, base_dir)

    for key, value in document.certificates.items():
        document.certificates[key] = _resolve_location(value, base_dir)


def substitute_values_files(
    document: StateDocument, substitutor: Substitutor, temp_dir: Path | None = None
) -> None:
    """Point every values/secrets file at a substituted temporary copy.

    Must run after resolve_paths so the originals are found regardless of
    the working directory.

    Raises:
        StateFileError: If a referenced file cannot be read.

    """
    for app in document.apps.values():
        if app.values_file:
            app.values_file = substitutor.substitute_file(app.values_file, temp_dir)
        if app.secrets_file:
            app.secrets_file = substitutor.substitute_file(app.secrets_file, temp_dir)
        app.values_files = [substitutor.substitute_file(f, temp_dir) for f in app.values_files]
        app.secrets_files = [substitutor.substitute_file(f, temp_dir) for f in app.secrets_files]
