from __future__ import annotations

import abc
import logging
import os
from dataclasses import dataclass
from pathlib import Path


LOGGER = logging.getLogger("codo.host")
LOGGER.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class HostUser:
    uid: int
    gid: int
    name: str
    home: str = ""


class HostContext(abc.ABC):
    """Process-global state the launcher reads from the host."""

    @abc.abstractmethod
    def current_user(self) -> HostUser | None:
        """The invoking user, or None when the user database has no entry for it."""
        pass

    @abc.abstractmethod
    def working_directory(self) -> Path:
        pass

    @abc.abstractmethod
    def home_directory(self) -> Path:
        pass

    @abc.abstractmethod
    def getenv(self, name: str) -> str | None:
        pass


class SystemHostContext(HostContext):
    def current_user(self) -> HostUser | None:
        import pwd

        uid = os.getuid()
        try:
            entry = pwd.getpwuid(uid)
        except KeyError:
            LOGGER.error("No user database entry for uid %s", uid)
            return None
        return HostUser(uid=entry.pw_uid, gid=entry.pw_gid, name=entry.pw_name, home=entry.pw_dir)

    def working_directory(self) -> Path:
        return Path.cwd()

    def home_directory(self) -> Path:
        return Path.home()

    def getenv(self, name: str) -> str | None:
        return os.environ.get(name)

