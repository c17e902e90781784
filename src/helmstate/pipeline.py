"""The helmstate reconciliation pipeline.

Stages run strictly in order: load (substitution and path resolution),
validation, kube context, namespaces, ownership discovery. A failing stage
raises the matching HelmstateError; deciding whether to notify and exit is
left to the caller.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from helmstate import console
from helmstate.config import RunOptions
from helmstate.context import ContextBootstrapper, current_context_active
from helmstate.exceptions import ContextSetupError, NamespaceSetupError, ValidationError
from helmstate.executor import CommandRunner
from helmstate.loader import load_state
from helmstate.models import AppEntry, BucketScheme, StateDocument
from helmstate.namespaces import NamespaceReconciler
from helmstate.ownership import ReleaseOwnershipDiscoverer
from helmstate.paths import is_request_uri
from helmstate.remote import AwsCliParameterStore, BucketReader, ParameterStore, default_readers
from helmstate.substitution import Substitutor
from helmstate.validation import validate


@dataclass(slots=True)
class RunReport:
    """What a completed run established.

    Attributes:
        document: The validated desired state, with namespaces overridden
            when namespace override is active.
        owned: Apps already managed by helmstate, per namespace.

    """

    document: StateDocument
    owned: dict[str, set[AppEntry]] = field(default_factory=dict)


class Pipeline:
    """Runs every reconciliation stage for one state file.

    Attributes:
        options: The run options.
        runner: Command runner shared by all stages.
        readers: Bucket reader per scheme.
        parameter_store: Store used for SSM substitution.

    """

    def __init__(
        self,
        options: RunOptions,
        *,
        runner: CommandRunner | None = None,
        readers: Mapping[BucketScheme, BucketReader] | None = None,
        parameter_store: ParameterStore | None = None,
    ) -> None:
        self.options = options
        self.runner = runner or CommandRunner(verbose=options.verbose)
        self.readers = readers if readers is not None else default_readers(self.runner)
        self.parameter_store = parameter_store or AwsCliParameterStore(self.runner)
        self.document: StateDocument | None = None

    @property
    def webhook(self) -> str:
        """Slack webhook of the loaded desired state, empty when unset or invalid."""
        if self.document is None:
            return ""
        webhook = self.document.settings.slack_webhook
        return webhook if is_request_uri(webhook) else ""

    def load(self, state_file: str | Path) -> StateDocument:
        """Load the desired state and validate it.

        Raises:
            StateFileError: If the file cannot be loaded.
            ValidationError: If the desired state is invalid.
            NoAppsDefined: If there is nothing to do.

        """
        substitutor = Substitutor(self.options, self.parameter_store)
        document = load_state(state_file, self.options, substitutor)
        self.document = document

        ok, message = validate(document, options=self.options, context_check=current_context_active)
        if not ok:
            raise ValidationError(message)
        console.success("Desired state validated")
        return document

    def run(self, state_file: str | Path) -> RunReport:
        """Run the whole pipeline against ``state_file``.

        Returns:
            RunReport with the resolved document and the ownership map.

        Raises:
            HelmstateError: From the first failing stage.

        """
        document = self.load(state_file)

        ok, message = ContextBootstrapper(document, self.options, self.runner, self.readers).ensure_context()
        if not ok:
            raise ContextSetupError(message)

        ok, message = NamespaceReconciler(document, self.options, self.runner).reconcile()
        if not ok:
            raise NamespaceSetupError(message)

        owned = ReleaseOwnershipDiscoverer(document, self.options, self.runner).discover()
        return RunReport(document=document, owned=owned)
