"""Remote storage and parameter store access.

Certificates, keys and bearer tokens may live in S3, GCS or Azure blob
storage. Each provider is reached through its own CLI, driven by the shared
CommandRunner, and selected from the URI scheme by BucketScheme.
"""

import shutil
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from helmstate import console
from helmstate.exceptions import BucketFetchError, ParameterFetchError
from helmstate.executor import CommandRunner
from helmstate.models import BucketLocation, BucketScheme


class BucketReader(Protocol):
    """Retrieves a single object from a bucket into a local file."""

    def fetch(self, bucket: str, key: str, output: Path) -> None: ...


class ParameterStore(Protocol):
    """Reads named parameters from a remote parameter store."""

    def get(self, name: str, with_decryption: bool) -> str: ...


def bucket_scheme(uri: str) -> BucketScheme | None:
    """Return the bucket scheme of ``uri``, or None for anything else."""
    scheme, sep, _ = uri.partition("://")
    if not sep:
        return None
    try:
        return BucketScheme(scheme)
    except ValueError:
        return None


def parse_bucket_uri(uri: str) -> BucketLocation:
    """Split ``<scheme>://<bucket>/<key>`` into its parts.

    Args:
        uri: The bucket URI.

    Returns:
        BucketLocation with scheme, bucket and key.

    Raises:
        BucketFetchError: If the URI has no recognised scheme, bucket or key.

    """
    scheme = bucket_scheme(uri)
    if scheme is None:
        raise BucketFetchError(f"[ {uri} ] is not an s3://, gs:// or az:// URI")
    bucket, _, key = uri.partition("://")[2].partition("/")
    if not bucket or not key:
        raise BucketFetchError(f"[ {uri} ] must have the form {scheme.value}://<bucket>/<path>")
    return BucketLocation(scheme=scheme, bucket=bucket, key=key)


class _CliBucketReader(ABC):
    """Common behaviour of the CLI-backed bucket readers."""

    program: str = ""
    provider: str = ""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    @abstractmethod
    def _args(self, bucket: str, key: str, output: Path) -> list[str]:
        """Return the provider CLI arguments copying ``bucket``/``key`` to ``output``."""

    def fetch(self, bucket: str, key: str, output: Path) -> None:
        result = self.runner.run(
            self.program,
            self._args(bucket, key, output),
            description=f"downloading {key} from {self.provider} bucket {bucket}",
        )
        if not result.ok:
            raise BucketFetchError(
                f"failed to download [ {key} ] from {self.provider} bucket [ {bucket} ]: {result.stderr}"
            )
        console.step(f"Downloaded {console.highlight(key)} from {self.provider} as {output.name}")


class S3Reader(_CliBucketReader):
    """Reads objects from AWS S3 with ``aws s3 cp``."""

    program = "aws"
    provider = "S3"

    def _args(self, bucket: str, key: str, output: Path) -> list[str]:
        return ["s3", "cp", f"s3://{bucket}/{key}", str(output), "--only-show-errors"]


class GcsReader(_CliBucketReader):
    """Reads objects from Google Cloud Storage with ``gsutil cp``."""

    program = "gsutil"
    provider = "GCS"

    def _args(self, bucket: str, key: str, output: Path) -> list[str]:
        return ["-q", "cp", f"gs://{bucket}/{key}", str(output)]


class AzureBlobReader(_CliBucketReader):
    """Reads blobs from Azure storage with ``az storage blob download``.

    The storage account is taken from the AZURE_STORAGE_ACCOUNT environment
    variable by the az CLI itself.
    """

    program = "az"
    provider = "Azure"

    def _args(self, bucket: str, key: str, output: Path) -> list[str]:
        return [
            "storage",
            "blob",
            "download",
            "--container-name",
            bucket,
            "--name",
            key,
            "--file",
            str(output),
            "--only-show-errors",
        ]


def default_readers(runner: CommandRunner) -> dict[BucketScheme, BucketReader]:
    """Return one reader per supported bucket scheme."""
    return {
        BucketScheme.S3: S3Reader(runner),
        BucketScheme.GCS: GcsReader(runner),
        BucketScheme.AZURE: AzureBlobReader(runner),
    }


def fetch_file(source: str, output: Path, readers: Mapping[BucketScheme, BucketReader]) -> Path:
    """Retrieve ``source`` into ``output``.

    Bucket URIs are dispatched to the reader registered for their scheme;
    anything else is treated as a local path and copied.

    Args:
        source: Bucket URI or local file path.
        output: Destination file.
        readers: Reader per bucket scheme.

    Returns:
        The output path.

    Raises:
        BucketFetchError: If the download or the local copy fails.

    """
    scheme = bucket_scheme(source)
    match scheme:
        case BucketScheme.S3 | BucketScheme.GCS | BucketScheme.AZURE:
            location = parse_bucket_uri(source)
            reader = readers.get(scheme)
            if reader is None:
                raise BucketFetchError(f"no reader configured for {scheme.value}:// URIs")
            reader.fetch(location.bucket, location.key, output)
        case None:
            console.step(f"{output.name} will be used from local file system")
            try:
                shutil.copyfile(source, output)
            except OSError as err:
                raise BucketFetchError(f"while copying {source} to {output} : {err.strerror}") from err
    return output


class AwsCliParameterStore:
    """Reads AWS SSM parameters with ``aws ssm get-parameter``."""

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def get(self, name: str, with_decryption: bool) -> str:
        """Return the value of SSM parameter ``name``.

        Raises:
            ParameterFetchError: If the parameter cannot be read.

        """
        args = ["ssm", "get-parameter", "--name", name, "--query", "Parameter.Value", "--output", "text"]
        if with_decryption:
            args.append("--with-decryption")
        result = self.runner.run("aws", args, description=f"reading SSM parameter {name}", sensitive=True)
        if not result.ok:
            raise ParameterFetchError(f"Can't find the SSM Parameter {name} : {result.stderr}")
        return result.stdout
