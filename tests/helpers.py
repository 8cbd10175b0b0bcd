from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from codo.errors import ContainerEngineFailure
from codo.host import HostContext, HostUser
from codo.runner import CommandRunner

ALICE = HostUser(uid=1000, gid=1000, name="alice", home="/home/alice")


@dataclass
class StaticHostContext(HostContext):
    user: HostUser | None = None
    cwd: Path = Path("/")
    home: Path = Path("/root")
    env: dict[str, str] = field(default_factory=dict)

    def current_user(self) -> HostUser | None:
        return self.user

    def working_directory(self) -> Path:
        return self.cwd

    def home_directory(self) -> Path:
        return self.home

    def getenv(self, name: str) -> str | None:
        return self.env.get(name)


def host_for(tmp_path: Path, *, user: HostUser | None = ALICE, env: dict[str, str] | None = None) -> StaticHostContext:
    home = tmp_path / "home"
    home.mkdir(parents=True, exist_ok=True)
    cwd = tmp_path / "work"
    cwd.mkdir(parents=True, exist_ok=True)
    return StaticHostContext(user=user, cwd=cwd, home=home, env=dict(env or {}))


def image_json_lines(*names: str) -> str:
    lines = []
    for index, name in enumerate(names):
        repository, _, tag = name.rpartition(":")
        lines.append(json.dumps({"Repository": repository, "Tag": tag, "ID": f"id{index}", "Size": "1MB"}))
    return "\n".join(lines) + "\n"


class RecordingRunner(CommandRunner):
    def __init__(self, *, images_output: str = "", fail_on: str | None = None, fail_code: int = 1) -> None:
        self.images_output = images_output
        self.fail_on = fail_on
        self.fail_code = fail_code
        self.commands: list[list[str]] = []

    def run(self, command: Iterable[str], *, capture_output: bool = False, cwd: Path | None = None) -> str:
        cmd = [str(part) for part in command]
        self.commands.append(cmd)
        if self.fail_on is not None and self.fail_on in cmd:
            raise ContainerEngineFailure(cmd, self.fail_code)
        if "images" in cmd:
            return self.images_output
        return ""

    def subcommands(self) -> list[str]:
        return [cmd[1] for cmd in self.commands if len(cmd) > 1]

    def find(self, subcommand: str) -> list[str] | None:
        return next((cmd for cmd in self.commands if len(cmd) > 1 and cmd[1] == subcommand), None)
