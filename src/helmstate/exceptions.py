"""Custom exceptions for helmstate.

This module defines the exception hierarchy used throughout the application
to provide meaningful error messages and a single place to handle them.
"""


class HelmstateError(Exception):
    """Base exception for all helmstate errors.

    All custom exceptions in this package inherit from this class,
    allowing the CLI to catch every helmstate failure with a single
    except clause before notifying and exiting.
    """

    pass


class StateFileError(HelmstateError):
    """Raised when the desired state file cannot be loaded.

    This can occur when:
    - The file does not exist or has an unsupported extension
    - The file is not valid YAML/TOML
    - The document contains fields that are not part of the state schema
    - A referenced values/secrets file cannot be read
    """

    pass


class ValidationError(HelmstateError):
    """Raised when the desired state fails validation."""

    pass


class NoAppsDefined(HelmstateError):
    """Raised when the desired state declares no apps.

    This is not a failure: the run stops early with a success status.
    """

    pass


class ParameterFetchError(HelmstateError):
    """Raised when a remote parameter cannot be read.

    This typically means credentials or the parameter name are wrong,
    which cannot be fixed by retrying.
    """

    pass


class BucketFetchError(HelmstateError):
    """Raised when a file cannot be retrieved from a bucket or copied locally."""

    pass


class BinaryNotFoundError(HelmstateError):
    """Raised when a required binary (kubectl, aws, gsutil, az) is not found.

    This can occur when:
    - The binary is not installed
    - The binary is not in the system PATH
    """

    pass


class ContextSetupError(HelmstateError):
    """Raised when the kube context cannot be selected or created."""

    pass


class NamespaceSetupError(HelmstateError):
    """Raised when a namespace cannot be fully reconciled."""

    pass


class ReleaseDiscoveryError(HelmstateError):
    """Raised when querying release storage objects in the cluster fails."""

    pass
