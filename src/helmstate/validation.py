"""Desired state validation.

Validation runs once, after substitution and path resolution and before any
cluster action. Stages run in a fixed order and stop at the first failure:
settings, notifications, certificates, namespaces, repositories, apps.
"""

import os
from collections.abc import Callable
from typing import NamedTuple

from helmstate import console
from helmstate.config import RunOptions
from helmstate.exceptions import NoAppsDefined
from helmstate.models import AppEntry, StateDocument
from helmstate.paths import is_request_uri
from helmstate.remote import bucket_scheme

_YAML_SUFFIXES = (".yaml", ".yml")


class ValidationResult(NamedTuple):
    """Outcome of a validation pass.

    Attributes:
        ok: Whether the document is valid.
        message: Description of the first failure, empty when valid.

    """

    ok: bool
    message: str


_VALID = ValidationResult(True, "")


def _fail(message: str) -> ValidationResult:
    return ValidationResult(False, message)


def is_valid_cert(value: str) -> bool:
    """Check that a certificate location is an existing file or a bucket URI."""
    if os.path.exists(value):
        return True
    return is_request_uri(value) and bucket_scheme(value) is not None


def _validate_settings(document: StateDocument, context_check: Callable[[], bool]) -> ValidationResult:
    settings = document.settings
    if (settings.is_empty() or not settings.kube_context) and not context_check():
        return _fail(
            "settings validation failed -- you have not defined a kubeContext to use. "
            "Either define it in the desired state file or pass a kubeconfig with an existing context."
        )

    if settings.cluster_uri:
        if not is_request_uri(settings.cluster_uri):
            return _fail(
                "settings validation failed -- clusterURI must have a valid URL set in an env variable "
                "or passed directly. Either the env var is missing/empty or the URL is invalid."
            )
        if not settings.kube_context:
            return _fail("settings validation failed -- KubeContext needs to be provided in the settings stanza.")
        if not settings.bearer_token and not settings.username:
            return _fail("settings validation failed -- username needs to be provided in the settings stanza.")
        if not settings.bearer_token and not settings.password:
            return _fail(
                "settings validation failed -- password needs to be provided (directly or from env var) "
                "in the settings stanza."
            )
        if settings.bearer_token and settings.bearer_token_path:
            if not os.path.exists(settings.bearer_token_path):
                return _fail(
                    f"settings validation failed -- bearer token path {settings.bearer_token_path} is not found. "
                    "The path has to be relative to the desired state file."
                )
    elif settings.bearer_token:
        return _fail("settings validation failed -- bearer token is enabled but no cluster URI provided.")

    if settings.eyaml_enabled:
        for key, path in (
            ("eyamlPrivateKeyPath", settings.eyaml_private_key_path),
            ("eyamlPublicKeyPath", settings.eyaml_public_key_path),
        ):
            if not path or not os.path.isfile(path):
                return _fail(
                    f"settings validation failed -- eyaml is enabled but [ {key} ] is missing or not found."
                )

    return _VALID


def _validate_notifications(document: StateDocument) -> ValidationResult:
    webhook = document.settings.slack_webhook
    if webhook and not is_request_uri(webhook):
        return _fail("settings validation failed -- slackWebhook must be a valid URL.")
    return _VALID


def _validate_certificates(document: StateDocument) -> ValidationResult:
    settings = document.settings
    certificates = document.certificates

    if not certificates:
        if settings.cluster_uri:
            return _fail(
                "certificates validation failed -- kube context setup is required but no certificates stanza provided."
            )
        return _VALID

    for key, value in certificates.items():
        location = value.strip()
        if not is_valid_cert(location):
            return _fail(
                f"certifications validation failed -- [ {key} ] must be a valid S3, GCS, AZ bucket/container URL "
                "or a valid relative file path."
            )
        certificates[key] = location

    has_ca_crt = "caCrt" in certificates
    has_ca_key = "caKey" in certificates
    if settings.cluster_uri and not settings.bearer_token:
        if not has_ca_crt or not has_ca_key:
            return _fail(
                "certificates validation failed -- You want me to connect to your cluster for you but have not "
                "given me the cert/key to do so. Please add [caCrt] and [caKey] under Certifications. "
                "You might also need to provide [clientCrt]."
            )
    elif settings.cluster_uri and settings.bearer_token:
        if not has_ca_crt:
            return _fail(
                "certificates validation failed -- cluster connection with bearer token is enabled but [caCrt] "
                "is missing. Please provide [caCrt] in the Certifications stanza."
            )
    return _VALID


def _validate_namespaces(document: StateDocument, options: RunOptions) -> ValidationResult:
    if options.override_active:
        console.info(
            f"ns-override is used to override all namespaces with {console.highlight(options.ns_override)}. "
            "Skipping defined namespaces validation."
        )
        return _VALID
    if not document.namespaces:
        return _fail("namespaces validation failed -- I need at least one namespace to work with!")
    return _VALID


def _validate_repos(document: StateDocument) -> ValidationResult:
    for name, url in document.helm_repos.items():
        if not is_request_uri(url):
            return _fail(f"repos validation failed -- repo [{name} ] must have a valid URL.")
    return _VALID


def _check_file(kind: str, path: str) -> str:
    if not path.lower().endswith(_YAML_SUFFIXES) or not os.path.isfile(path):
        return (
            f"{kind} must be a valid relative (from dsf file) file path for a yaml file, "
            f'or can be left empty (provided path resolved to "{path}").'
        )
    return ""


def validate_app(
    app: AppEntry,
    names: dict[str, set[str]],
    document: StateDocument,
    options: RunOptions,
) -> ValidationResult:
    """Validate a single app entry.

    Args:
        app: The app to validate.
        names: Release names already seen, per namespace. Updated in place.
        document: The desired state the app belongs to.
        options: The run options.

    Returns:
        ValidationResult for this app.

    """
    if not app.name:
        return _fail("release name can't be empty.")

    namespace = options.ns_override or app.namespace
    if not namespace:
        return _fail("release targeted namespace can't be empty.")
    if not options.override_active and namespace not in document.namespaces:
        return _fail(
            f"release {app.name} is using namespace [ {namespace} ] which is not defined in the Namespaces "
            "section of your desired state file."
        )

    seen = names.setdefault(namespace, set())
    if app.name in seen:
        return _fail("release name must be unique within a given namespace.")
    seen.add(app.name)

    if not app.chart:
        return _fail("chart can't be empty and must be of the format: repo/chart.")
    repo = os.path.dirname(app.chart) or "."
    if not document.is_known_repo(repo) and not os.path.isdir(app.chart):
        return _fail(
            f"chart [ {app.chart} ] is neither a local chart directory nor a chart from a defined repository."
        )
    if not app.version:
        return _fail("version can't be empty.")

    if app.values_file and app.values_files:
        return _fail("valuesFile and valuesFiles should not be used together.")
    if app.secrets_file and app.secrets_files:
        return _fail("secretsFile and secretsFiles should not be used together.")
    for kind, files in (
        ("valuesFile", [app.values_file] if app.values_file else app.values_files),
        ("secretsFile", [app.secrets_file] if app.secrets_file else app.secrets_files),
    ):
        for path in files:
            message = _check_file(kind, path)
            if message:
                return _fail(message)

    if app.priority > 0:
        return _fail("priority can only be 0 or negative value, positive values are not allowed.")

    return _VALID


def validate(
    document: StateDocument,
    *,
    options: RunOptions,
    context_check: Callable[[], bool],
) -> ValidationResult:
    """Validate the desired state before any cluster action.

    Args:
        document: The resolved desired state. Certificate values are
            normalised in place.
        options: The run options.
        context_check: Returns True when kubectl already has an active
            context; only consulted when no kubeContext is configured.

    Returns:
        ValidationResult, failing with the message of the first broken rule.

    Raises:
        NoAppsDefined: If the document declares no apps, which ends the run
            successfully.

    """
    for check in (
        lambda: _validate_settings(document, context_check),
        lambda: _validate_notifications(document),
        lambda: _validate_certificates(document),
        lambda: _validate_namespaces(document, options),
        lambda: _validate_repos(document),
    ):
        result = check()
        if not result.ok:
            return result

    if not document.apps:
        raise NoAppsDefined("No apps specified. Nothing to be executed.")

    names: dict[str, set[str]] = {}
    for label, app in document.apps.items():
        result = validate_app(app, names, document, options)
        if not result.ok:
            return _fail(f"apps validation failed -- for app [{label} ]. {result.message}")

    return _VALID
