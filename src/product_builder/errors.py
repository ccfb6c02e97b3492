"""Error types raised while building a product.

ConfigError aborts the whole run before any part starts. Every other
error is caught at the per-part pipeline boundary and recorded on the part.
"""

from pydantic import ValidationError


class BuildError(Exception):
    """Base class for all product build errors."""


class ConfigError(BuildError):
    """The product manifest or the run configuration is invalid."""


class MalformedRepoReferenceError(ConfigError):
    """A repository reference looks like a URL but cannot be parsed."""


class PluginTypeError(BuildError):
    """A cloned repository has no usable .yo-rc.json."""


class SubprocessError(BuildError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        command: list[str],
        returncode: int | None,
        signal: int | None = None,
        output: str = "",
    ):
        self.command = command
        self.returncode = returncode
        self.signal = signal
        self.output = output
        cmd = " ".join(command)
        if returncode is None:
            msg = f"{cmd} timed out"
        else:
            msg = f"{cmd} failed with status code {returncode}"
            if signal is not None:
                msg += f" (signal {signal})"
        super().__init__(msg)


class MissingDockerfileError(BuildError):
    """The type-specific Dockerfile does not exist in the workspace."""


class NetworkError(BuildError):
    """Downloading a data source failed."""


class MergeError(BuildError):
    """A compose fragment or the merged compose document is malformed."""


def format_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}"
        for err in e.errors()
    )
