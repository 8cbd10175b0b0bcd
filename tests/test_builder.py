from __future__ import annotations

import unittest
import tempfile
from pathlib import Path

import click

from codo.builder import ImageBuilder, build_command, default_dockerfile, user_provisioning_instructions
from codo.config import ConfigStore
from codo.errors import ContainerEngineFailure
from helpers import ALICE, RecordingRunner, host_for


class ImageBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)
        self.store = ConfigStore(self.tmp_path / "config")
        self.scratch_root = self.tmp_path / "scratch"
        self.runner = RecordingRunner()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _builder(self, *, user=ALICE, engine=("docker",)) -> ImageBuilder:
        return ImageBuilder(
            runner=self.runner,
            host=host_for(self.tmp_path, user=user),
            config_store=self.store,
            engine=engine,
            scratch_root=self.scratch_root,
        )

    def test_default_dockerfile_is_single_from_line(self) -> None:
        self.assertEqual(default_dockerfile("fedora"), "FROM fedora\n")

    def test_unconfigured_image_without_user_is_plain_from(self) -> None:
        with self.assertLogs("codo.builder", level="WARNING"):
            request = self._builder(user=None).prepare("fedora")

        self.assertEqual(request.dockerfile_contents, "FROM fedora\n")
        self.assertEqual(request.dockerfile_path.read_text(encoding="utf-8"), "FROM fedora\n")
        self.assertEqual(request.build_context, self.scratch_root / "codo")
        self.assertEqual(request.tag, "fedora:latest-codo")

    def test_unconfigured_image_gets_user_provisioning(self) -> None:
        with self.assertLogs("codo.builder", level="INFO") as logs:
            request = self._builder().prepare("fedora")

        self.assertIn("only granted when fedora ships sudo", "\n".join(logs.output))

        self.assertTrue(request.dockerfile_contents.startswith("FROM fedora\n"))
        self.assertIn("useradd --non-unique --uid 1000 --gid 1000", request.dockerfile_contents)
        self.assertIn("NOPASSWD:ALL", request.dockerfile_contents)
        self.assertIn("ENV HOME=/home/alice\n", request.dockerfile_contents)
        self.assertTrue(request.dockerfile_contents.endswith("USER 1000:1000\n"))
        self.assertEqual(request.dockerfile_path, self.scratch_root / "codo-alice" / "Dockerfile")
        self.assertEqual(request.build_context, self.scratch_root / "codo-alice")
        self.assertEqual(request.tag, "fedora:latest-codo-alice")

    def test_configured_image_uses_template_and_config_dir_context(self) -> None:
        image_dir = self.store.images_dir / "devbox"
        image_dir.mkdir(parents=True)
        (image_dir / "CodoDockerfile").write_text("FROM fedora:40\nRUN dnf install -y git", encoding="utf-8")

        request = self._builder().prepare("devbox")

        self.assertTrue(request.dockerfile_contents.startswith("FROM fedora:40\nRUN dnf install -y git\n"))
        self.assertIn("USER 1000:1000", request.dockerfile_contents)
        self.assertEqual(request.build_context, image_dir)

    def test_missing_template_propagates_os_error(self) -> None:
        (self.store.images_dir / "devbox").mkdir(parents=True)
        with self.assertRaises(FileNotFoundError):
            self._builder().build("devbox")
        self.assertEqual(self.runner.commands, [])

    def test_build_runs_engine_with_pull_and_scratch_dockerfile(self) -> None:
        request = self._builder(engine=("sudo", "docker")).build("ubuntu:22.04")

        self.assertEqual(
            self.runner.commands,
            [
                [
                    "sudo",
                    "docker",
                    "build",
                    "--pull=true",
                    "-t",
                    "ubuntu:22.04-codo-alice",
                    "-f",
                    str(request.dockerfile_path),
                    str(request.build_context),
                ]
            ],
        )

    def test_build_failure_propagates(self) -> None:
        self.runner.fail_on = "build"
        with self.assertRaises(ContainerEngineFailure):
            self._builder().build("fedora")

    def test_build_all_builds_each_configured_image(self) -> None:
        for name in ("fedora", "ubuntu"):
            image_dir = self.store.images_dir / name
            image_dir.mkdir(parents=True)
            (image_dir / "CodoDockerfile").write_text(f"FROM {name}\n", encoding="utf-8")

        built = self._builder().build_all()

        self.assertEqual(built, ["fedora", "ubuntu"])
        tags = [cmd[cmd.index("-t") + 1] for cmd in self.runner.commands]
        self.assertEqual(tags, ["fedora:latest-codo-alice", "ubuntu:latest-codo-alice"])

    def test_build_all_continues_past_failures(self) -> None:
        (self.store.images_dir / "broken").mkdir(parents=True)
        good_dir = self.store.images_dir / "fedora"
        good_dir.mkdir(parents=True)
        (good_dir / "CodoDockerfile").write_text("FROM fedora\n", encoding="utf-8")

        with self.assertLogs("codo.builder", level="ERROR"):
            with self.assertRaises(click.ClickException) as ctx:
                self._builder().build_all()

        self.assertIn("broken", ctx.exception.format_message())
        self.assertEqual(len(self.runner.commands), 1)


def test_provisioning_quotes_user_name() -> None:
    instructions = user_provisioning_instructions(ALICE)
    assert instructions.startswith("\nUSER root\n")
    assert "echo 'alice ALL=(ALL:ALL) NOPASSWD:ALL' > /etc/sudoers.d/90-codo-alice" in instructions


def test_sudoers_entry_is_skipped_when_image_lacks_sudo() -> None:
    instructions = user_provisioning_instructions(ALICE)
    guard = instructions.index("if command -v sudo >/dev/null 2>&1; then")
    assert guard < instructions.index("mkdir -p /etc/sudoers.d")
    assert instructions.index("chmod 0440") < instructions.index("fi\nENV HOME=")


def test_build_command_without_pull(tmp_path: Path) -> None:
    from codo.builder import BuildRequest

    request = BuildRequest(
        image_name="fedora",
        dockerfile_contents="FROM fedora\n",
        build_context=tmp_path,
        dockerfile_path=tmp_path / "Dockerfile",
        tag="fedora:latest-codo",
        pull_latest=False,
    )
    assert build_command(["podman"], request) == [
        "podman",
        "build",
        "-t",
        "fedora:latest-codo",
        "-f",
        str(tmp_path / "Dockerfile"),
        str(tmp_path),
    ]


if __name__ == "__main__":
    unittest.main()
