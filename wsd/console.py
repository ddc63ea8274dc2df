from __future__ import annotations

from typing import IO

import click

PROMPT = "> "


class Console:
    """
    Terminal rendering for a session.

    In raw mode received bytes are copied to the output stream untouched and
    every decoration (banner, prompt) is suppressed; errors still go to the
    error stream.
    """

    def __init__(
        self,
        raw: bool = False,
        out: IO | None = None,
        err: IO | None = None,
        color: bool | None = None,
    ) -> None:
        self.raw = raw
        self.out = out
        self.err = err
        self.color = color

    def _echo(self, message, nl: bool = True) -> None:
        click.echo(message, file=self.out, nl=nl, color=self.color)

    def _echo_err(self, message: str) -> None:
        click.echo(message, file=self.err, err=True, color=self.color)

    def connecting(self, url: str, protocol: str, origin: str) -> None:
        if self.raw:
            return
        target = click.style(url, fg="yellow")
        source = click.style(origin, fg="yellow")
        if protocol:
            via = click.style(protocol, fg="yellow")
            self._echo(f"connecting to {target} via {via} from {source}...")
        else:
            self._echo(f"connecting to {target} from {source}...")

    def connected(self, url: str) -> None:
        if self.raw:
            return
        self._echo(f"successfully connected to {click.style(url, fg='green')}\n")

    def prompt(self) -> None:
        if not self.raw:
            self._echo(PROMPT, nl=False)

    def received(self, message: bytes) -> None:
        if self.raw:
            self._echo(message, nl=False)
            return
        text = message.decode("utf-8", errors="replace")
        # \r overwrites a half-typed prompt line; the prompt is redrawn after.
        self._echo(f"\r< {click.style(text, fg='cyan')}\n{PROMPT}", nl=False)

    def transient_error(self, error: object) -> None:
        self._echo_err(f"\rerr {click.style(str(error), fg='red')}")
        self.prompt()

    def remote_closed(self, error: object) -> None:
        notice = click.style(str(error), fg="magenta")
        self._echo_err(f"\r✝ {notice} - connection closed by remote")

    def fatal(self, error: object) -> None:
        self._echo_err(f"{click.style('error', fg='red', bold=True)} {error}")
