"""Console output of a build run.

Lines are prefixed with the part key in the part's color so that the
output of concurrently running parts stays readable.
"""

import click

from product_builder.models.part import Part


class Reporter:
    def __init__(self, quiet: bool = False):
        self.quiet = quiet

    def info(self, message: str, part: Part | None = None, fg: str | None = "blue"):
        if self.quiet:
            return
        click.echo(self._prefix(part) + click.style(message, fg=fg))

    def warning(self, message: str, part: Part | None = None):
        click.echo(self._prefix(part) + click.style(f"WARNING: {message}", fg="yellow"), err=True)

    def error(self, message: str, part: Part | None = None):
        click.echo(self._prefix(part) + click.style(message, fg="red"), err=True)

    def output(self, text: str, part: Part | None = None):
        """Captured output of a failed command; printed even when quiet."""
        prefix = self._prefix(part)
        for line in text.rstrip().splitlines():
            click.echo(prefix + line, err=True)

    def summary(self, parts: list[Part]):
        click.echo(click.style("summary:", bold=True))
        width = max((len(p.key) for p in parts), default=0)
        for p in parts:
            status = click.style("ERROR", fg="red") if p.error else click.style("SUCCESS", fg="green")
            click.echo(f" {p.key}{'.' * (3 + width - len(p.key))}{status}")

    @staticmethod
    def _prefix(part: Part | None) -> str:
        if part is None:
            return ""
        return click.style(f"[{part.key}] ", fg=part.color)
