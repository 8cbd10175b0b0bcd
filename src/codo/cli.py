from __future__ import annotations

import logging
import sys
from typing import Any, Sequence

import click

from codo.args import SplitResult, split_invocation_args
from codo.builder import ImageBuilder
from codo.config import ConfigStore
from codo.host import HostContext, SystemHostContext
from codo.launcher import ContainerLauncher
from codo.runner import CommandRunner


LOGGER = logging.getLogger("codo")
LOGGER.addHandler(logging.NullHandler())

LOG_LEVEL_ENV = "CODO_LOG_LEVEL"
LOG_LEVEL_CHOICES = ("debug", "info", "warning", "error")
DEFAULT_LOG_LEVEL = "warning"
VALUE_FLAGS = frozenset({"-i", "--image", "--log-level"})


def _normalize_log_level(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in LOG_LEVEL_CHOICES:
        return normalized
    return DEFAULT_LOG_LEVEL


def _configure_logging(level: str) -> None:
    normalized = _normalize_log_level(level)
    handler = logging.StreamHandler(sys.__stderr__)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    LOGGER.handlers.clear()
    LOGGER.addHandler(handler)
    LOGGER.setLevel(getattr(logging, normalized.upper(), logging.WARNING))
    LOGGER.propagate = False


def _host_and_runner(obj: dict[str, Any]) -> tuple[HostContext, CommandRunner]:
    return obj.get("host") or SystemHostContext(), obj.get("runner") or CommandRunner()


def _log_level_option(func):
    return click.option(
        "--log-level",
        type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
        default=DEFAULT_LOG_LEVEL,
        show_default=True,
        envvar=LOG_LEVEL_ENV,
        help="Diagnostic output written to stderr",
    )(func)


@click.command(help="Runs a single command in a container")
@click.option("-i", "--image", default=None, help="Image of the container to run")
@click.option("-b", "--build", "build", is_flag=True, default=False, help="Build the selected image")
@_log_level_option
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def cli(
    ctx: click.Context,
    image: str | None,
    build: bool,
    log_level: str,
    command: tuple[str, ...],
) -> None:
    _configure_logging(log_level)
    obj = ctx.ensure_object(dict)

    inner_command = list(command)
    split: SplitResult | None = obj.get("split")
    if split is not None:
        LOGGER.debug("Wrapper args: %s", split.wrapper_tokens)
        LOGGER.debug("Input command: %s", split.inner_command)
        LOGGER.debug("Input command index: %d", split.split_index)
        if split.missing_value is not None:
            LOGGER.warning("%s was given without a value and is ignored", split.missing_value)
        inner_command = list(split.inner_command)

    host, runner = _host_and_runner(obj)
    config_store = ConfigStore.for_host(host)
    config = config_store.load()
    image_name = str(image or "").strip() or config.default_image
    LOGGER.debug("Image: %s Build: %s", image_name, build)

    builder = ImageBuilder(
        runner=runner,
        host=host,
        config_store=config_store,
        engine=config.container_engine,
    )
    launcher = ContainerLauncher(
        runner=runner,
        host=host,
        config_store=config_store,
        builder=builder,
        engine=config.container_engine,
        listing=config.image_listing,
    )
    try:
        launcher.launch(image_name, command=inner_command, force_build=build)
    except OSError as exc:
        raise click.ClickException(f"Failed to prepare image {image_name}: {exc}") from exc


def main(
    argv: Sequence[str] | None = None,
    *,
    host: HostContext | None = None,
    runner: CommandRunner | None = None,
    standalone_mode: bool = True,
) -> Any:
    args = [str(arg) for arg in (sys.argv[1:] if argv is None else argv)]
    if not args:
        with click.Context(cli, info_name="codo") as ctx:
            click.echo(cli.get_help(ctx))
        return None

    split = split_invocation_args(args, VALUE_FLAGS)
    wrapper_tokens = list(split.wrapper_tokens)
    if split.missing_value is not None:
        # The dangling flag ends the last wrapper token, alone or bundled (-bi).
        dangling = wrapper_tokens.pop()
        if dangling != split.missing_value:
            wrapper_tokens.append(dangling[:-1])
    # click only sees wrapper tokens; the inner command travels in obj.
    return cli.main(
        args=wrapper_tokens,
        prog_name="codo",
        standalone_mode=standalone_mode,
        obj={"split": split, "host": host, "runner": runner},
    )


@click.command(help="Manage the images configured for codo")
@click.option("-B", "--build-all", "build_all", is_flag=True, default=False, help="Build every configured image")
@_log_level_option
@click.pass_context
def ctl(ctx: click.Context, build_all: bool, log_level: str) -> None:
    _configure_logging(log_level)
    if not build_all:
        click.echo(ctx.get_help())
        return

    host, runner = _host_and_runner(ctx.ensure_object(dict))
    config_store = ConfigStore.for_host(host)
    config = config_store.load()
    builder = ImageBuilder(
        runner=runner,
        host=host,
        config_store=config_store,
        engine=config.container_engine,
    )
    built = builder.build_all()
    if not built:
        click.echo(f"No images configured under {config_store.images_dir}")


if __name__ == "__main__":
    main()
