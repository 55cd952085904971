"""Terminal prompts for the credential negotiator."""

from __future__ import annotations

import sys

import click


class ClickPromptSource:
    """Hidden password and yes/no prompts through click.

    Returns None instead of blocking when stdin is not a terminal, and when the
    user aborts with Ctrl+C or Ctrl+D.
    """

    def __init__(self, *, require_tty: bool = True) -> None:
        self._require_tty = require_tty

    def ask_secret(self, question: str) -> str | None:
        if not self._interactive():
            return None
        try:
            answer = click.prompt(
                question,
                hide_input=True,
                default="",
                show_default=False,
                err=True,
            )
        except click.Abort:
            click.echo("", err=True)
            return None
        return answer or None

    def confirm(self, question: str, *, default: bool = True) -> bool:
        if not self._interactive():
            return False
        try:
            return click.confirm(question, default=default, err=True)
        except click.Abort:
            return False

    def _interactive(self) -> bool:
        return not self._require_tty or sys.stdin.isatty()
