"""Run-scoped configuration for helmstate.

Every pipeline stage receives a RunOptions instance instead of reading
module-level flags, so a run is fully described by its options object.
"""

from dataclasses import dataclass, field
from pathlib import Path

STABLE_HELM_REPO = "https://charts.helm.sh/stable"
INCUBATOR_HELM_REPO = "https://charts.helm.sh/incubator"

# Label applied to release storage objects managed by helmstate
OWNERSHIP_LABEL_KEY = "MANAGED-BY"
OWNERSHIP_LABEL_VALUE = "HELMSTATE"

DEFAULT_STORAGE_BACKEND = "secret"


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Options controlling a single helmstate run.

    Attributes:
        no_env_subst: Skip environment substitution in the state file.
        no_ssm_subst: Skip SSM parameter substitution in the state file.
        no_env_values_subst: Skip environment substitution in values/secrets files.
        no_ssm_values_subst: Skip SSM parameter substitution in values/secrets files.
        ns_override: Namespace replacing every app namespace, empty when unused.
        no_default_repos: Do not add the stable/incubator helm repositories.
        debug: Print commands and intermediate values.
        verbose: Print verbose-only console messages.
        work_dir: Directory receiving fetched certificates and tokens.
        temp_dir: Directory receiving substituted values files, None for the system default.

    """

    no_env_subst: bool = False
    no_ssm_subst: bool = False
    no_env_values_subst: bool = False
    no_ssm_values_subst: bool = False
    ns_override: str = ""
    no_default_repos: bool = False
    debug: bool = False
    verbose: bool = False
    work_dir: Path = field(default_factory=Path.cwd)
    temp_dir: Path | None = None

    @property
    def override_active(self) -> bool:
        """Whether all namespaces collapse into ns_override."""
        return bool(self.ns_override)
