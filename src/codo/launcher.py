from __future__ import annotations

import logging
from typing import Iterable, Sequence

from codo.builder import ImageBuilder
from codo.config import ConfigStore, ImageSettings
from codo.host import HostContext
from codo.inventory import LISTING_JSON, fetch_image_inventory
from codo.runner import CommandRunner
from codo.tagging import tagged_image_name


LOGGER = logging.getLogger("codo.launcher")
LOGGER.addHandler(logging.NullHandler())

CONTAINER_WORKDIR = "/codo"
X11_SOCKET_DIR = "/tmp/.X11-unix"


class ContainerLauncher:
    def __init__(
        self,
        *,
        runner: CommandRunner,
        host: HostContext,
        config_store: ConfigStore,
        builder: ImageBuilder,
        engine: Iterable[str],
        listing: str = LISTING_JSON,
    ) -> None:
        self.runner = runner
        self.host = host
        self.config_store = config_store
        self.builder = builder
        self.engine = tuple(engine)
        self.listing = listing

    def _working_dir_args(self) -> list[str]:
        try:
            working_dir = self.host.working_directory()
        except OSError as exc:
            LOGGER.error("Failed to get working directory: %s", exc)
            return []
        return ["-v", f"{working_dir}:{CONTAINER_WORKDIR}", "-w", CONTAINER_WORKDIR]

    def _display_args(self) -> list[str]:
        display = self.host.getenv("DISPLAY")
        if not display:
            LOGGER.debug("DISPLAY is not set; skipping GUI passthrough")
            return []
        return ["-e", f"DISPLAY={display}", "-v", f"{X11_SOCKET_DIR}:{X11_SOCKET_DIR}"]

    def run_command(self, tagged_name: str, command: Sequence[str], settings: ImageSettings) -> list[str]:
        run_cmd = [*self.engine, "run", "-ti", "--rm"]
        if settings.bind_working_dir:
            run_cmd.extend(self._working_dir_args())
        if settings.pass_gui:
            run_cmd.extend(self._display_args())
        run_cmd.append(tagged_name)
        run_cmd.extend(command)
        return run_cmd

    def ensure_image(self, image_name: str, *, force_build: bool) -> str:
        tagged_name = tagged_image_name(image_name, self.host)
        inventory = fetch_image_inventory(self.runner, self.engine, listing=self.listing)
        if force_build or tagged_name not in inventory:
            LOGGER.info("Building %s (forced=%s)", tagged_name, force_build)
            self.builder.build(image_name)
        return tagged_name

    def launch(self, image_name: str, *, command: Sequence[str], force_build: bool = False) -> None:
        if not command:
            if force_build:
                self.builder.build(image_name)
            LOGGER.debug("No command given; nothing to run")
            return

        tagged_name = self.ensure_image(image_name, force_build=force_build)
        run_cmd = self.run_command(tagged_name, command, self.config_store.image_settings(image_name))
        self.runner.run(run_cmd)
