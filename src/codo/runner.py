from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Iterable

from codo.errors import ContainerEngineFailure


LOGGER = logging.getLogger("codo.runner")
LOGGER.addHandler(logging.NullHandler())


class CommandRunner:
    """Runs engine commands one at a time, blocking until each exits.

    Interactive runs inherit the caller's stdin/stdout/stderr. Captured runs
    return stdout as text and leave stderr attached to the terminal so engine
    diagnostics stay visible.
    """

    def run(self, command: Iterable[str], *, capture_output: bool = False, cwd: Path | None = None) -> str:
        cmd = [str(part) for part in command]
        LOGGER.debug("Running %s", shlex.join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                check=False,
                stdout=subprocess.PIPE if capture_output else None,
                text=True,
            )
        except OSError as exc:
            raise ContainerEngineFailure(cmd, None, detail=str(exc)) from exc

        # A negative return code means the process was killed by a signal.
        if result.returncode < 0:
            raise ContainerEngineFailure(cmd, None)
        if result.returncode != 0:
            raise ContainerEngineFailure(cmd, result.returncode)
        if capture_output:
            return result.stdout or ""
        return ""
