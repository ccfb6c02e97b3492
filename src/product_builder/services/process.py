"""Running external commands (git, npm, pip, yo, docker).

Commands run through subprocess.run in a worker thread so that the
pipelines of several parts can wait on their commands concurrently.
"""

import asyncio
import subprocess
import sys
from pathlib import Path

from product_builder.errors import SubprocessError
from product_builder.models.config import BuildParams
from product_builder.models.part import Part
from product_builder.services.repo_resolver import redact_credentials
from product_builder.services.reporter import Reporter


def npm_executable() -> str:
    return "npm.cmd" if sys.platform == "win32" else "npm"


class CommandRunner:
    """Runs commands with the env snapshot and timeout of the build params.

    In quiet mode the output is captured and only printed when the
    command fails.
    """

    def __init__(self, params: BuildParams, reporter: Reporter):
        self.params = params
        self.reporter = reporter

    async def run(
        self,
        cmd: list[str],
        cwd: Path,
        part: Part | None = None,
        capture: bool = False,
    ) -> str | None:
        """Run cmd in cwd; with capture, return its stdout."""
        shown = [redact_credentials(arg) for arg in cmd]
        self.reporter.info(f"{cwd}: running {' '.join(shown)}", part)
        return await asyncio.to_thread(self._run, cmd, shown, cwd, part, capture)

    def _run(self, cmd: list[str], shown: list[str], cwd: Path, part: Part | None, capture: bool) -> str | None:
        quiet = self.params.quiet
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                env=self.params.env or None,
                capture_output=quiet or capture,
                text=True,
                timeout=self.params.timeout,
            )
        except FileNotFoundError:
            raise SubprocessError(shown, 127, output=f"{cmd[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            output = _decode(e.stdout) + _decode(e.stderr)
            raise SubprocessError(shown, None, output=redact_credentials(output))

        if result.returncode != 0:
            output = (result.stdout or "") + (result.stderr or "") if quiet or capture else ""
            output = redact_credentials(output)
            if output:
                self.reporter.output(output, part)
            signal = -result.returncode if result.returncode < 0 else None
            raise SubprocessError(shown, result.returncode, signal, output)
        return result.stdout if capture else None


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
