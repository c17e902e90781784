"""Namespace reconciliation.

This module provides the NamespaceReconciler which makes sure every
namespace of the desired state exists with its labels, annotations and
LimitRange. Every operation is idempotent: re-running it against an
already reconciled cluster changes nothing and reports no error.
"""

import contextlib
import textwrap
from pathlib import Path
from tempfile import NamedTemporaryFile

import yaml
from icecream import ic
from rich.markup import escape

from helmstate import console
from helmstate.config import RunOptions
from helmstate.executor import CommandRunner
from helmstate.models import LimitRule, Namespace, StateDocument

_LIMIT_RANGE_HEADER = """\
---
apiVersion: v1
kind: LimitRange
metadata:
  name: limit-range
spec:
  limits:
"""


def build_limit_range(rules: list[LimitRule]) -> str:
    """Render the LimitRange manifest for ``rules``.

    Args:
        rules: The limit rules, in declaration order.

    Returns:
        The manifest text with the rules indented under ``spec.limits``.

    """
    body = yaml.safe_dump([rule.to_manifest() for rule in rules], default_flow_style=False, sort_keys=False)
    return _LIMIT_RANGE_HEADER + textwrap.indent(body, " " * 4)


class NamespaceReconciler:
    """Creates, labels, annotates and limits the desired namespaces.

    Attributes:
        document: The validated desired state.
        options: The run options.
        runner: Command runner used for kubectl.

    """

    def __init__(self, document: StateDocument, options: RunOptions, runner: CommandRunner) -> None:
        self.document = document
        self.options = options
        self.runner = runner

    def __repr__(self) -> str:
        return f"NamespaceReconciler(namespaces={list(self.document.namespaces)!r})"

    def create_namespace(self, name: str) -> None:
        """Create namespace ``name``; an existing namespace is left untouched."""
        result = self.runner.run("kubectl", ["create", "namespace", name], description=f"creating namespace {name}")
        if result.ok:
            console.step(f"Namespace {console.highlight(name)} created")
        elif "already exists" in result.stderr.lower():
            console.debug(f"Namespace [ {name} ] already exists.", verbose=self.options.verbose)
        else:
            console.warning(f"Can't create namespace {console.highlight(name)}: {escape(result.stderr)}")

    def _apply_metadata(self, verb: str, name: str, pairs: dict[str, str]) -> None:
        for key, value in pairs.items():
            result = self.runner.run(
                "kubectl",
                [verb, "--overwrite", f"namespace/{name}", f"{key}={value}"],
                description=f"{verb} namespace {name}",
            )
            if not result.ok:
                console.warning(
                    f"Can't {verb} namespace {console.highlight(name)} with "
                    f"{escape(f'{key}={value}')}: {escape(result.stderr)}"
                )

    def label_namespace(self, name: str, labels: dict[str, str]) -> None:
        """Apply ``labels`` to namespace ``name``, overwriting existing values."""
        self._apply_metadata("label", name, labels)

    def annotate_namespace(self, name: str, annotations: dict[str, str]) -> None:
        """Apply ``annotations`` to namespace ``name``, overwriting existing values."""
        self._apply_metadata("annotate", name, annotations)

    def set_limits(self, name: str, rules: list[LimitRule]) -> tuple[bool, str]:
        """Apply a LimitRange built from ``rules`` to namespace ``name``.

        The manifest goes through a temporary file which is removed whatever
        the outcome of ``kubectl apply``.

        Returns:
            (True, "") on success or when there are no rules, otherwise
            (False, message).

        """
        if not rules:
            return True, ""

        definition = build_limit_range(rules)
        ic(definition)

        # Create temp file with delete=False and close it so kubectl can read it
        temp_file = NamedTemporaryFile("w", suffix="-LimitRange.yaml", delete=False)
        manifest = Path(temp_file.name)
        try:
            with temp_file:
                temp_file.write(definition)
            result = self.runner.run(
                "kubectl",
                ["apply", "-f", str(manifest), "-n", name],
                description=f"creating LimitRange in namespace [ {name} ]",
            )
        finally:
            with contextlib.suppress(OSError):
                manifest.unlink(missing_ok=True)

        if not result.ok:
            return False, f"failed to create LimitRange in namespace [ {name} ]: {result.stderr}"
        return True, ""

    def reconcile_namespace(self, name: str, namespace: Namespace) -> tuple[bool, str]:
        """Run create, label, annotate and limits for a single namespace."""
        self.create_namespace(name)
        self.label_namespace(name, namespace.labels)
        self.annotate_namespace(name, namespace.annotations)
        return self.set_limits(name, namespace.limits)

    def override_apps_namespace(self, name: str) -> None:
        """Move every app of the desired state into namespace ``name``."""
        console.info(f"Overriding apps namespaces with {console.highlight(name)}")
        for app in self.document.apps.values():
            app.namespace = name

    def reconcile(self) -> tuple[bool, str]:
        """Reconcile all namespaces of the desired state.

        Under namespace override only the override namespace is created and
        every app is moved into it.

        Returns:
            (True, "") on success, otherwise (False, message) from the first
            namespace whose LimitRange could not be applied.

        """
        if self.options.override_active:
            self.create_namespace(self.options.ns_override)
            self.override_apps_namespace(self.options.ns_override)
            return True, ""

        with console.spinner("Reconciling namespaces..."):
            for name, namespace in self.document.namespaces.items():
                ok, message = self.reconcile_namespace(name, namespace)
                if not ok:
                    return False, message
        console.success(f"Reconciled {console.highlight(str(len(self.document.namespaces)))} namespaces")
        return True, ""
