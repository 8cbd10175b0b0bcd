from __future__ import annotations

import logging
import shlex
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import click

from codo.config import IMAGE_DOCKERFILE_NAME, ConfigStore
from codo.host import HostContext, HostUser
from codo.runner import CommandRunner
from codo.tagging import codo_tag, tagged_image_name


LOGGER = logging.getLogger("codo.builder")
LOGGER.addHandler(logging.NullHandler())

SCRATCH_ROOT = Path(tempfile.gettempdir()) / "codo"
SCRATCH_DOCKERFILE_NAME = "Dockerfile"


@dataclass(frozen=True)
class BuildRequest:
    image_name: str
    dockerfile_contents: str
    build_context: Path
    dockerfile_path: Path
    tag: str
    pull_latest: bool = True


def default_dockerfile(image_name: str) -> str:
    return f"FROM {image_name}\n"


def user_provisioning_instructions(user: HostUser) -> str:
    """Dockerfile lines that recreate the host user inside the image.

    Files the container writes into the bind-mounted working directory then
    belong to the host user instead of root.
    """
    name = shlex.quote(user.name)
    home = f"/home/{user.name}"
    sudoers_line = shlex.quote(f"{user.name} ALL=(ALL:ALL) NOPASSWD:ALL")
    sudoers_file = shlex.quote(f"/etc/sudoers.d/90-codo-{user.name}")
    return (
        "\n"
        "USER root\n"
        f"RUN (getent group {user.gid} >/dev/null || groupadd --gid {user.gid} {name}) \\\n"
        f"    && (id -u {name} >/dev/null 2>&1 || useradd --non-unique --uid {user.uid} --gid {user.gid} "
        f"--create-home --home-dir {shlex.quote(home)} {name}) \\\n"
        f"    && if command -v sudo >/dev/null 2>&1; then \\\n"
        f"        mkdir -p /etc/sudoers.d \\\n"
        f"        && echo {sudoers_line} > {sudoers_file} \\\n"
        f"        && chmod 0440 {sudoers_file}; \\\n"
        f"    fi\n"
        f"ENV HOME={home}\n"
        f"USER {user.uid}:{user.gid}\n"
    )


def build_command(engine: Iterable[str], request: BuildRequest) -> list[str]:
    command = [*engine, "build"]
    if request.pull_latest:
        command.append("--pull=true")
    command.extend(["-t", request.tag, "-f", str(request.dockerfile_path), str(request.build_context)])
    return command


class ImageBuilder:
    def __init__(
        self,
        *,
        runner: CommandRunner,
        host: HostContext,
        config_store: ConfigStore,
        engine: Iterable[str],
        scratch_root: Path | None = None,
    ) -> None:
        self.runner = runner
        self.host = host
        self.config_store = config_store
        self.engine = tuple(engine)
        self.scratch_root = scratch_root or SCRATCH_ROOT

    def scratch_dir(self) -> Path:
        return self.scratch_root / codo_tag(self.host)

    def prepare(self, image_name: str) -> BuildRequest:
        scratch_dir = self.scratch_dir()
        scratch_dir.mkdir(parents=True, exist_ok=True)

        image_config_dir = self.config_store.image_config_dir(image_name)
        if image_config_dir is not None:
            dockerfile = (image_config_dir / IMAGE_DOCKERFILE_NAME).read_text(encoding="utf-8")
            build_context = image_config_dir
        else:
            LOGGER.debug("No config directory for %s; building a plain FROM image", image_name)
            dockerfile = default_dockerfile(image_name)
            build_context = scratch_dir

        user = self.host.current_user()
        if user is not None:
            if not dockerfile.endswith("\n"):
                dockerfile += "\n"
            dockerfile += user_provisioning_instructions(user)
            LOGGER.info("Passwordless sudo for %s is only granted when %s ships sudo", user.name, image_name)
        else:
            LOGGER.warning("Failed to resolve the current user; %s will run as the image's default user", image_name)

        dockerfile_path = scratch_dir / SCRATCH_DOCKERFILE_NAME
        dockerfile_path.write_text(dockerfile, encoding="utf-8")

        return BuildRequest(
            image_name=image_name,
            dockerfile_contents=dockerfile,
            build_context=build_context,
            dockerfile_path=dockerfile_path,
            tag=tagged_image_name(image_name, self.host),
        )

    def build(self, image_name: str) -> BuildRequest:
        request = self.prepare(image_name)
        click.echo(f"Building image '{request.tag}' from {request.dockerfile_path}", err=True)
        self.runner.run(build_command(self.engine, request))
        return request

    def build_all(self) -> list[str]:
        """Build every image that has a directory under the config's images/."""
        built: list[str] = []
        failures: list[str] = []
        for image_name in self.config_store.image_names():
            try:
                self.build(image_name)
            except (OSError, click.ClickException) as exc:
                message = exc.format_message() if isinstance(exc, click.ClickException) else str(exc)
                LOGGER.error("Failed to build image %s: %s", image_name, message)
                failures.append(image_name)
                continue
            built.append(image_name)
        if failures:
            raise click.ClickException(f"Failed to build {len(failures)} image(s): {', '.join(failures)}")
        return built
