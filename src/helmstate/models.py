"""Data models for helmstate.

This module provides the in-memory representation of a desired state
document. Documents are decoded strictly: any key that is not part of the
schema is rejected with a StateFileError naming the offending field.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, NamedTuple

from helmstate.exceptions import StateFileError

_Decoder = Callable[[Any, str], Any]


def _as_str(value: Any, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise StateFileError(f"field [ {where} ] must be a string")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_bool(value: Any, where: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise StateFileError(f"field [ {where} ] must be a boolean")
    return value


def _as_int(value: Any, where: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise StateFileError(f"field [ {where} ] must be an integer")
    return value


def _as_str_list(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise StateFileError(f"field [ {where} ] must be a list")
    return [_as_str(item, f"{where}[{i}]") for i, item in enumerate(value)]


def _as_str_map(value: Any, where: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StateFileError(f"field [ {where} ] must be a mapping")
    return {str(k): _as_str(v, f"{where}.{k}") for k, v in value.items()}


def _key(name: str, decoder: _Decoder, **kwargs: Any) -> Any:
    """Declare a dataclass field read from the document key ``name``."""
    return field(metadata={"key": name, "decode": decoder}, **kwargs)


def decode(cls: type, data: Any, where: str) -> Any:
    """Strictly decode a mapping into the dataclass ``cls``.

    Args:
        cls: The dataclass to build.
        data: The raw mapping, or None for an all-defaults instance.
        where: Dotted location of ``data`` inside the document, used in errors.

    Returns:
        An instance of ``cls``.

    Raises:
        StateFileError: If ``data`` is not a mapping, contains an unknown key,
            or holds a value of the wrong shape.

    """
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise StateFileError(f"field [ {where} ] must be a mapping")

    known = {f.metadata["key"]: f for f in fields(cls) if "key" in f.metadata}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        location = f"{where}.{key}" if where else str(key)
        if key not in known:
            raise StateFileError(f"unknown field [ {location} ] in desired state")
        target = known[key]
        kwargs[target.name] = target.metadata["decode"](value, location)
    return cls(**kwargs)


def _decode_map_of(cls: type) -> _Decoder:
    def _decoder(value: Any, where: str) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise StateFileError(f"field [ {where} ] must be a mapping")
        return {str(k): decode(cls, v, f"{where}.{k}") for k, v in value.items()}

    return _decoder


def _decode_list_of(cls: type) -> _Decoder:
    def _decoder(value: Any, where: str) -> list[Any]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise StateFileError(f"field [ {where} ] must be a list")
        return [decode(cls, item, f"{where}[{i}]") for i, item in enumerate(value)]

    return _decoder


def _decode_one(cls: type) -> _Decoder:
    return lambda value, where: decode(cls, value, where)


@dataclass(slots=True)
class Settings:
    """Cluster access and run-wide settings of the desired state."""

    kube_context: str = _key("kubeContext", _as_str, default="")
    username: str = _key("username", _as_str, default="")
    password: str = _key("password", _as_str, default="")
    cluster_uri: str = _key("clusterURI", _as_str, default="")
    service_account: str = _key("serviceAccount", _as_str, default="")
    storage_backend: str = _key("storageBackend", _as_str, default="")
    slack_webhook: str = _key("slackWebhook", _as_str, default="")
    reverse_delete: bool = _key("reverseDelete", _as_bool, default=False)
    bearer_token: bool = _key("bearerToken", _as_bool, default=False)
    bearer_token_path: str = _key("bearerTokenPath", _as_str, default="")
    eyaml_enabled: bool = _key("eyamlEnabled", _as_bool, default=False)
    eyaml_private_key_path: str = _key("eyamlPrivateKeyPath", _as_str, default="")
    eyaml_public_key_path: str = _key("eyamlPublicKeyPath", _as_str, default="")

    def is_empty(self) -> bool:
        """Return True when every setting holds its zero value."""
        return self == Settings()


@dataclass(slots=True)
class Resources:
    """CPU and memory quantities of a limit rule."""

    cpu: str = _key("cpu", _as_str, default="")
    memory: str = _key("memory", _as_str, default="")

    def to_manifest(self) -> dict[str, str]:
        quantities = {"cpu": self.cpu, "memory": self.memory}
        return {k: v for k, v in quantities.items() if v}


@dataclass(slots=True)
class LimitRule:
    """A single LimitRange rule, scoped to containers, pods, etc."""

    type: str = _key("type", _as_str, default="")
    max: Resources = _key("max", _decode_one(Resources), default_factory=Resources)
    min: Resources = _key("min", _decode_one(Resources), default_factory=Resources)
    default: Resources = _key("default", _decode_one(Resources), default_factory=Resources)
    default_request: Resources = _key(
        "defaultRequest", _decode_one(Resources), default_factory=Resources
    )
    max_limit_request_ratio: Resources = _key(
        "maxLimitRequestRatio", _decode_one(Resources), default_factory=Resources
    )

    def to_manifest(self) -> dict[str, Any]:
        """Return the rule as it appears under ``spec.limits`` of a LimitRange."""
        rule: dict[str, Any] = {}
        for key, resources in (
            ("max", self.max),
            ("min", self.min),
            ("default", self.default),
            ("defaultRequest", self.default_request),
            ("maxLimitRequestRatio", self.max_limit_request_ratio),
        ):
            quantities = resources.to_manifest()
            if quantities:
                rule[key] = quantities
        rule["type"] = self.type
        return rule


@dataclass(slots=True)
class Namespace:
    """A namespace declared in the desired state.

    The protected flag blocks destructive operations on the namespace's
    releases; it is carried here and enforced by release planning.
    """

    protected: bool = _key("protected", _as_bool, default=False)
    labels: dict[str, str] = _key("labels", _as_str_map, default_factory=dict)
    annotations: dict[str, str] = _key("annotations", _as_str_map, default_factory=dict)
    limits: list[LimitRule] = _key("limits", _decode_list_of(LimitRule), default_factory=list)


@dataclass(eq=False, slots=True)
class AppEntry:
    """An application (helm release) declared in the desired state.

    Entries hash by identity so the same entry can be collected in sets.
    """

    name: str = _key("name", _as_str, default="")
    description: str = _key("description", _as_str, default="")
    namespace: str = _key("namespace", _as_str, default="")
    enabled: bool = _key("enabled", _as_bool, default=False)
    group: str = _key("group", _as_str, default="")
    chart: str = _key("chart", _as_str, default="")
    version: str = _key("version", _as_str, default="")
    values_file: str = _key("valuesFile", _as_str, default="")
    values_files: list[str] = _key("valuesFiles", _as_str_list, default_factory=list)
    secrets_file: str = _key("secretsFile", _as_str, default="")
    secrets_files: list[str] = _key("secretsFiles", _as_str_list, default_factory=list)
    protected: bool = _key("protected", _as_bool, default=False)
    wait: bool = _key("wait", _as_bool, default=False)
    priority: int = _key("priority", _as_int, default=0)
    no_hooks: bool = _key("noHooks", _as_bool, default=False)
    timeout: int = _key("timeout", _as_int, default=0)
    set: dict[str, str] = _key("set", _as_str_map, default_factory=dict)
    set_string: dict[str, str] = _key("setString", _as_str_map, default_factory=dict)
    set_file: dict[str, str] = _key("setFile", _as_str_map, default_factory=dict)
    helm_flags: list[str] = _key("helmFlags", _as_str_list, default_factory=list)


@dataclass(slots=True)
class StateDocument:
    """The desired state of a cluster, owned by a single run."""

    metadata: dict[str, str] = _key("metadata", _as_str_map, default_factory=dict)
    certificates: dict[str, str] = _key("certificates", _as_str_map, default_factory=dict)
    settings: Settings = _key("settings", _decode_one(Settings), default_factory=Settings)
    namespaces: dict[str, Namespace] = _key(
        "namespaces", _decode_map_of(Namespace), default_factory=dict
    )
    helm_repos: dict[str, str] = _key("helmRepos", _as_str_map, default_factory=dict)
    preconfigured_helm_repos: list[str] = _key(
        "preconfiguredHelmRepos", _as_str_list, default_factory=list
    )
    apps: dict[str, AppEntry] = _key("apps", _decode_map_of(AppEntry), default_factory=dict)
    apps_templates: dict[str, AppEntry] = _key(
        "appsTemplates", _decode_map_of(AppEntry), default_factory=dict
    )

    @classmethod
    def from_dict(cls, data: Any) -> "StateDocument":
        """Build a document from a parsed YAML/TOML mapping.

        Raises:
            StateFileError: If the mapping does not follow the state schema.

        """
        return decode(cls, data, "")

    def is_known_repo(self, name: str) -> bool:
        """Whether ``name`` is a declared or pre-configured helm repository."""
        return name in self.helm_repos or name in self.preconfigured_helm_repos


class CommandResult(NamedTuple):
    """Outcome of an external command.

    Attributes:
        exit_code: Process exit code, 0 on success.
        stdout: Captured standard output.
        stderr: Captured standard error.

    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class BucketScheme(str, Enum):
    """Supported remote bucket URI schemes.

    Inherits from str so the value is the URI scheme itself.
    """

    S3 = "s3"
    GCS = "gs"
    AZURE = "az"


class BucketLocation(NamedTuple):
    """A file inside a remote bucket.

    Attributes:
        scheme: The bucket provider.
        bucket: Bucket (or Azure container) name.
        key: Object key inside the bucket.

    """

    scheme: BucketScheme
    bucket: str
    key: str


class StorageRecord(NamedTuple):
    """One row of a ``kubectl get`` listing of release storage objects."""

    name: str
    fields: tuple[str, ...]
