"""Kube context selection and bootstrap.

This module provides the ContextBootstrapper which registers a kubectl
context from the desired state settings: it resolves credentials, fetches
certificates and the bearer token, then registers credentials, cluster and
context with kubectl. Any failing step aborts the bootstrap; nothing is
retried.
"""

from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from icecream import ic
from kubernetes import config
from kubernetes.config.config_exception import ConfigException

from helmstate import console
from helmstate.config import RunOptions
from helmstate.exceptions import BucketFetchError
from helmstate.executor import CommandRunner
from helmstate.models import BucketScheme, StateDocument
from helmstate.remote import BucketReader, fetch_file

SERVICE_ACCOUNT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
DEFAULT_BEARER_USERNAME = "helmstate"

# Local file names of the fetched artifacts, inside RunOptions.work_dir
CA_CRT_FILE = "ca.crt"
CA_KEY_FILE = "ca.key"
CLIENT_CRT_FILE = "client.crt"
BEARER_TOKEN_FILE = "bearer.token"


class BootstrapStage(str, Enum):
    """Progress of a context bootstrap."""

    START = "start"
    CREDENTIALS_RESOLVED = "credentials-resolved"
    CERTS_FETCHED = "certs-fetched"
    CREDENTIALS_REGISTERED = "credentials-registered"
    CLUSTER_REGISTERED = "cluster-registered"
    CONTEXT_REGISTERED = "context-registered"
    DONE = "done"
    ABORTED = "aborted"


def current_context_active() -> bool:
    """Check whether the kubeconfig has an active context.

    Returns:
        True if a current context is set, False if the kubeconfig is
        missing, invalid or has no current context.

    """
    try:
        _, current_context = config.list_kube_config_contexts()
    except ConfigException as err:
        ic(err)
        console.info("Kubectl context is not set")
        return False
    return bool(current_context and current_context.get("name"))


class ContextBootstrapper:
    """Registers the kube context described by the desired state settings.

    Attributes:
        document: The validated desired state.
        options: The run options.
        runner: Command runner used for kubectl.
        readers: Bucket reader per scheme for remote certificates.
        stage: The last stage reached.

    """

    def __init__(
        self,
        document: StateDocument,
        options: RunOptions,
        runner: CommandRunner,
        readers: Mapping[BucketScheme, BucketReader],
    ) -> None:
        self.document = document
        self.options = options
        self.runner = runner
        self.readers = readers
        self.stage: BootstrapStage = BootstrapStage.START
        self._ca_crt: str = ""
        self._ca_key: str = ""
        self._ca_client: str = ""
        self._token_file: Path | None = None

    def __repr__(self) -> str:
        return f"ContextBootstrapper(context={self.context_name!r}, stage={self.stage.value!r})"

    @property
    def context_name(self) -> str:
        return self.document.settings.kube_context

    def _abort(self, message: str) -> tuple[bool, str]:
        self.stage = BootstrapStage.ABORTED
        return False, message

    def _missing(self, detail: str) -> tuple[bool, str]:
        return self._abort(f"missing information to create context [ {self.context_name} ] {detail}")

    def _kubectl(self, args: list[str], description: str, *, sensitive: bool = False) -> str:
        """Run kubectl and return its stderr on failure, empty string on success."""
        result = self.runner.run("kubectl", args, description=description, sensitive=sensitive)
        if result.ok:
            return ""
        return result.stderr or result.stdout or f"exit code {result.exit_code}"

    def use_context(self, name: str) -> bool:
        """Make ``name`` the active kubectl context.

        Returns:
            False if the context does not exist.

        """
        if not name:
            return current_context_active()
        if self._kubectl(["config", "use-context", name], f"setting kubectl context to [ {name} ]"):
            console.info(f"KubeContext {console.highlight(name)} does not exist. I will try to create it.")
            return False
        return True

    def ensure_context(self) -> tuple[bool, str]:
        """Switch to the configured context, creating it when it does not exist."""
        if self.use_context(self.context_name):
            console.action(f"Working with {console.highlight(self.context_name or 'current')} context")
            self.stage = BootstrapStage.DONE
            return True, ""
        return self.bootstrap()

    def _resolve_credentials(self) -> tuple[bool, str]:
        settings = self.document.settings
        certificates = self.document.certificates

        if settings.bearer_token:
            if not settings.bearer_token_path:
                console.info("Creating kube context with bearer token from K8S service account.")
                settings.bearer_token_path = SERVICE_ACCOUNT_TOKEN_PATH
            else:
                console.info(f"Creating kube context with bearer token from {settings.bearer_token_path}")
            if not settings.username:
                settings.username = DEFAULT_BEARER_USERNAME
            if not settings.cluster_uri:
                return self._missing("CLUSTERURI is missing in the Settings section of your desired state file.")
            if not certificates.get("caCrt"):
                return self._missing("caCrt is missing in the Certifications section of your desired state file.")
        else:
            if not settings.password or not settings.username or not settings.cluster_uri:
                return self._missing(
                    "you are either missing PASSWORD, USERNAME or CLUSTERURI in the Settings section "
                    "of your desired state file."
                )
            if not certificates.get("caCrt") or not certificates.get("caKey"):
                return self._missing(
                    "you are either missing caCrt or caKey or both in the Certifications section "
                    "of your desired state file."
                )

        self.stage = BootstrapStage.CREDENTIALS_RESOLVED
        return True, ""

    def _fetch_certificates(self) -> tuple[bool, str]:
        settings = self.document.settings
        certificates = self.document.certificates
        work_dir = self.options.work_dir

        try:
            with console.spinner("Fetching certificates..."):
                for key, filename, attr in (
                    ("caCrt", CA_CRT_FILE, "_ca_crt"),
                    ("caKey", CA_KEY_FILE, "_ca_key"),
                    ("caClient", CLIENT_CRT_FILE, "_ca_client"),
                ):
                    source = certificates.get(key, "")
                    if source:
                        setattr(self, attr, str(fetch_file(source, work_dir / filename, self.readers)))
                if settings.bearer_token:
                    self._token_file = fetch_file(
                        settings.bearer_token_path, work_dir / BEARER_TOKEN_FILE, self.readers
                    )
        except BucketFetchError as err:
            return self._abort(f"failed to create context [ {self.context_name} ]: {err}")

        self.stage = BootstrapStage.CERTS_FETCHED
        return True, ""

    def _register_credentials(self) -> tuple[bool, str]:
        settings = self.document.settings
        if settings.bearer_token and self._token_file is not None:
            try:
                token = self._token_file.read_text().strip()
            except OSError as err:
                return self._abort(
                    f"failed to create context [ {self.context_name} ]: cannot read bearer token: {err.strerror}"
                )
            args = ["config", "set-credentials", settings.username, f"--token={token}"]
        else:
            args = [
                "config",
                "set-credentials",
                settings.username,
                f"--username={settings.username}",
                f"--password={settings.password}",
                f"--client-key={self._ca_key}",
            ]
            if self._ca_client:
                args.append(f"--client-certificate={self._ca_client}")

        # Credentials are never traced
        err = self._kubectl(args, "creating kubectl context - setting credentials.", sensitive=True)
        if err:
            return self._abort(f"failed to create context [ {self.context_name} ]:  {err}")
        self.stage = BootstrapStage.CREDENTIALS_REGISTERED
        return True, ""

    def _register_cluster(self) -> tuple[bool, str]:
        settings = self.document.settings
        err = self._kubectl(
            [
                "config",
                "set-cluster",
                self.context_name,
                f"--server={settings.cluster_uri}",
                f"--certificate-authority={self._ca_crt}",
            ],
            "creating kubectl context - setting cluster.",
        )
        if err:
            return self._abort(f"failed to create context [ {self.context_name} ]: {err}")
        self.stage = BootstrapStage.CLUSTER_REGISTERED
        return True, ""

    def _register_context(self) -> tuple[bool, str]:
        err = self._kubectl(
            [
                "config",
                "set-context",
                self.context_name,
                f"--cluster={self.context_name}",
                f"--user={self.document.settings.username}",
            ],
            "creating kubectl context - setting context.",
        )
        if err:
            return self._abort(f"failed to create context [ {self.context_name} ]: {err}")
        self.stage = BootstrapStage.CONTEXT_REGISTERED

        if not self.use_context(self.context_name):
            return self._abort(
                f"something went wrong while setting the kube context to the newly created one [ {self.context_name} ]."
            )
        return True, ""

    def bootstrap(self) -> tuple[bool, str]:
        """Create the kube context and make it the active one.

        Returns:
            (True, "") when the context is registered and active, otherwise
            (False, message) describing the failing step.

        """
        console.action(f"Creating kube context {console.highlight(self.context_name)}")
        self.stage = BootstrapStage.START
        for stage in (
            self._resolve_credentials,
            self._fetch_certificates,
            self._register_credentials,
            self._register_cluster,
            self._register_context,
        ):
            ok, message = stage()
            if not ok:
                return ok, message

        self.stage = BootstrapStage.DONE
        console.success(f"Kube context {console.highlight(self.context_name)} is ready")
        return True, ""
