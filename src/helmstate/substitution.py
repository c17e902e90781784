"""Variable substitution in state and values files.

Two independent passes rewrite raw text before it is parsed:
environment variables (``$NAME``, ``${NAME}``, with ``$$`` as a literal
dollar) and SSM parameters (``{{ssm: /path}}``, ``{{ssm: /path~true}}``
to read with decryption).
"""

import os
import re
import tempfile
from pathlib import Path

from icecream import ic

from helmstate import console
from helmstate.config import RunOptions
from helmstate.exceptions import StateFileError
from helmstate.remote import ParameterStore

_ENV_MARKER = "$"
_SSM_MARKER = "{{ssm: "
_SSM_PATTERN = re.compile(r"\{\{ssm: ([^~}]+)(~(true))?\}\}")

# $$, ${name}, a dangling "${", one special character, or an identifier
_ENV_PATTERN = re.compile(r"\$(?:(\$)|\{([^}]*)\}|(\{)|([*#@!?\-0-9])|([A-Za-z0-9_]+))")


def _expand_env(match: re.Match[str]) -> str:
    escaped, braced, dangling, special, name = match.groups()
    if escaped or dangling:
        return "$" if escaped else ""
    return os.environ.get(braced or special or name or "", "")


def substitute_env(text: str) -> str:
    """Expand environment variables in ``text`` the way a shell-style expander does.

    Text without a ``$`` is returned unchanged. ``$$`` produces a literal
    ``$``. ``${...}`` takes everything up to the closing brace as the name,
    so ``${NAME:-x}`` looks up ``NAME:-x``; an unclosed ``${`` is dropped.
    ``$`` followed by a digit or one of ``*#@!?-`` reads that single
    character. Unset variables expand to an empty string and a ``$`` that
    starts no name is kept.

    Args:
        text: The raw text.

    Returns:
        The text with variables expanded.

    """
    if _ENV_MARKER not in text:
        return text
    return _ENV_PATTERN.sub(_expand_env, text)


def substitute_ssm(text: str, store: ParameterStore) -> str:
    """Replace ``{{ssm: name}}`` placeholders with parameter values.

    Args:
        text: The raw text.
        store: Parameter store the values are read from.

    Returns:
        The text with every well-formed placeholder replaced.

    Raises:
        ParameterFetchError: If a parameter cannot be read.

    """
    if _SSM_MARKER not in text:
        return text

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        with_decryption = match.group(3) == "true"
        ic(name, with_decryption)
        return store.get(name, with_decryption)

    return _SSM_PATTERN.sub(_replace, text)


class Substitutor:
    """Applies the substitution passes enabled by the run options.

    Attributes:
        options: The run options gating each pass.
        store: Parameter store used by the SSM pass.

    """

    def __init__(self, options: RunOptions, store: ParameterStore) -> None:
        self.options = options
        self.store = store

    def substitute(self, text: str, *, values_file: bool = False) -> str:
        """Run the enabled passes over ``text``.

        Args:
            text: The raw text.
            values_file: Whether ``text`` is the content of a values/secrets
                file, which has its own switches in addition to the global ones.

        Returns:
            The substituted text.

        """
        env_enabled = not self.options.no_env_subst
        ssm_enabled = not self.options.no_ssm_subst
        if values_file:
            env_enabled = env_enabled and not self.options.no_env_values_subst
            ssm_enabled = ssm_enabled and not self.options.no_ssm_values_subst

        if env_enabled:
            text = substitute_env(text)
        if ssm_enabled:
            text = substitute_ssm(text, self.store)
        return text

    def substitute_file(self, path: str, temp_dir: Path | None = None) -> str:
        """Write a substituted copy of the values file at ``path``.

        The copy keeps the original base name and lives in a fresh
        directory under ``temp_dir``.

        Args:
            path: The values/secrets file to rewrite.
            temp_dir: Parent directory for the copy, None for the system default.

        Returns:
            Path of the substituted copy.

        Raises:
            StateFileError: If the file cannot be read or the copy written.

        """
        source = Path(path)
        try:
            content = source.read_text(encoding="utf-8")
        except OSError as err:
            raise StateFileError(f"failed to read [ {path} ] file content: {err.strerror}") from err
        except UnicodeDecodeError as err:
            raise StateFileError(f"[ {path} ] is not valid UTF-8 text: {err.reason}") from err

        console.debug(f"Substituting variables in file: {path}", verbose=self.options.verbose)
        content = self.substitute(content, values_file=True)

        try:
            out_dir = Path(tempfile.mkdtemp(prefix="tmp", dir=temp_dir))
            out_file = out_dir / source.name
            out_file.write_text(content, encoding="utf-8")
        except OSError as err:
            raise StateFileError(f"failed to write substituted copy of [ {path} ]: {err.strerror}") from err
        return str(out_file)
