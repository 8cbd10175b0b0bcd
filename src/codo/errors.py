from __future__ import annotations

import shlex
from typing import Iterable

import click


class ContainerEngineFailure(click.ClickException):
    """An engine command exited unsuccessfully or printed output codo cannot read.

    ``returncode`` is None when the process never reported an exit status
    (killed by a signal, or could not be started).
    """

    def __init__(self, command: Iterable[str], returncode: int | None = None, detail: str = "") -> None:
        self.command = [str(part) for part in command]
        self.returncode = returncode
        self.detail = str(detail or "").strip()
        rendered = shlex.join(self.command)
        if self.detail:
            message = f"Command failed ({self.detail}): {rendered}"
        elif returncode is None:
            message = f"Command failed without an exit status: {rendered}"
        else:
            message = f"Command failed with exit code {returncode}: {rendered}"
        super().__init__(message)


class ConfigError(click.ClickException):
    pass
