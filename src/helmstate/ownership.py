"""Release ownership discovery.

Helm keeps the state of every release revision in storage objects
(secrets by default) named ``<release>.v<revision>``. Releases deployed by
helmstate carry the ownership label on those objects; this module finds
them and maps them back to the apps of the desired state.
"""

from icecream import ic

from helmstate import console
from helmstate.config import DEFAULT_STORAGE_BACKEND, OWNERSHIP_LABEL_KEY, OWNERSHIP_LABEL_VALUE, RunOptions
from helmstate.exceptions import ReleaseDiscoveryError
from helmstate.executor import CommandRunner
from helmstate.models import AppEntry, StateDocument, StorageRecord

_NO_RESOURCES = "NO RESOURCES FOUND"
_REVISION_DELIMITER = ".v"

OWNERSHIP_SELECTOR = f"{OWNERSHIP_LABEL_KEY}={OWNERSHIP_LABEL_VALUE}"


def parse_storage_listing(output: str) -> list[StorageRecord]:
    """Parse the tabular output of ``kubectl get``.

    Empty lines, the header row and the "No resources found" message are
    skipped.

    Args:
        output: Raw kubectl output.

    Returns:
        One StorageRecord per object row, in output order.

    """
    records: list[StorageRecord] = []
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped or stripped.endswith("AGE") or stripped.upper().startswith(_NO_RESOURCES):
            continue
        fields = tuple(stripped.split())
        records.append(StorageRecord(name=fields[0], fields=fields))
    return records


def strip_revision(identifier: str) -> str:
    """Return the release name of a storage object, ``myapp.v3`` -> ``myapp``."""
    name, sep, _ = identifier.rpartition(_REVISION_DELIMITER)
    return name if sep else identifier


class ReleaseOwnershipDiscoverer:
    """Maps releases labeled as managed by helmstate to desired state apps.

    Attributes:
        document: The desired state.
        options: The run options.
        runner: Command runner used for kubectl.

    """

    def __init__(self, document: StateDocument, options: RunOptions, runner: CommandRunner) -> None:
        self.document = document
        self.options = options
        self.runner = runner

    @property
    def storage_backend(self) -> str:
        return self.document.settings.storage_backend or DEFAULT_STORAGE_BACKEND

    def _namespaces(self) -> list[str]:
        """Declared namespaces, followed by the override namespace when it is not one of them."""
        namespaces = list(self.document.namespaces)
        if self.options.override_active and self.options.ns_override not in namespaces:
            namespaces.append(self.options.ns_override)
        return namespaces

    def list_managed(self, namespace: str) -> list[StorageRecord]:
        """List the storage objects carrying the ownership label in ``namespace``.

        Raises:
            ReleaseDiscoveryError: If the kubectl query fails.

        """
        result = self.runner.run(
            "kubectl",
            ["get", self.storage_backend, "-n", namespace, "-l", OWNERSHIP_SELECTOR],
            description=f"getting helm releases which are managed by helmstate in namespace [ {namespace} ]",
        )
        if not result.ok:
            raise ReleaseDiscoveryError(
                f"failed to list helm releases in namespace [ {namespace} ]: {result.stderr or result.stdout}"
            )
        return parse_storage_listing(result.stdout)

    def discover(self) -> dict[str, set[AppEntry]]:
        """Find the apps already deployed and managed by helmstate.

        Returns:
            Mapping of namespace to the set of owned apps found in it.
            Namespaces without managed releases are absent.

        Raises:
            ReleaseDiscoveryError: If a kubectl query fails.

        """
        owned: dict[str, set[AppEntry]] = {}
        for namespace in self._namespaces():
            for record in self.list_managed(namespace):
                release = strip_revision(record.name)
                for app in self.document.apps.values():
                    if app.name == release:
                        owned.setdefault(namespace, set()).add(app)
        ic(owned)
        return owned

    def mark_release_owned(self, app: AppEntry) -> None:
        """Label the storage objects of ``app`` as managed by helmstate.

        Disabled apps are skipped.

        Raises:
            ReleaseDiscoveryError: If kubectl fails to apply the labels.

        """
        if not app.enabled:
            return
        console.step(f"Applying helmstate labels to {console.highlight(app.name)} in namespace {app.namespace}")
        result = self.runner.run(
            "kubectl",
            [
                "label",
                self.storage_backend,
                "-n",
                app.namespace,
                "-l",
                f"owner=helm,name={app.name}",
                OWNERSHIP_SELECTOR,
                f"NAMESPACE={app.namespace}",
                "--overwrite",
            ],
            description=f"applying labels to Helm state for {app.name}",
        )
        if not result.ok:
            raise ReleaseDiscoveryError(f"failed to label helm state of [ {app.name} ]: {result.stderr}")
