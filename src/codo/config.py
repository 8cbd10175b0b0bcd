from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from codo.errors import ConfigError
from codo.host import HostContext
from codo.inventory import LISTING_CHOICES, LISTING_JSON


LOGGER = logging.getLogger("codo.config")
LOGGER.addHandler(logging.NullHandler())

CONFIG_DIR_ENV = "CODO_CONFIG_DIR"
CONFIG_FILE_NAME = "codo.yaml"
IMAGES_DIR_NAME = "images"
IMAGE_DOCKERFILE_NAME = "CodoDockerfile"
IMAGE_CONFIG_FILE_NAME = "config.yaml"

DEFAULT_IMAGE_KEY = "default-image"
CONTAINER_ENGINE_KEY = "container-engine"
IMAGE_LISTING_KEY = "image-listing"
PASS_GUI_KEY = "pass-gui"
BIND_WORKING_DIR_KEY = "bind-working-dir"

DEFAULT_IMAGE = "fedora"
DEFAULT_CONTAINER_ENGINE = ("docker",)


@dataclass(frozen=True)
class CodoConfig:
    default_image: str = DEFAULT_IMAGE
    container_engine: tuple[str, ...] = DEFAULT_CONTAINER_ENGINE
    image_listing: str = LISTING_JSON


@dataclass(frozen=True)
class ImageSettings:
    pass_gui: bool = True
    bind_working_dir: bool = True


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    document = yaml.safe_load(raw)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}, got {type(document).__name__}")
    return document


def _string_value(document: dict[str, Any], key: str, default: str, path: Path) -> str:
    value = document.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' in {path} must be a non-empty string")
    return value.strip()


def _engine_value(document: dict[str, Any], path: Path) -> tuple[str, ...]:
    value = document.get(CONTAINER_ENGINE_KEY)
    if value is None:
        return DEFAULT_CONTAINER_ENGINE
    if isinstance(value, str):
        parts = shlex.split(value)
    elif isinstance(value, list) and all(isinstance(part, str) for part in value):
        parts = [part for part in value if part.strip()]
    else:
        raise ConfigError(f"'{CONTAINER_ENGINE_KEY}' in {path} must be a string or a list of strings")
    if not parts:
        raise ConfigError(f"'{CONTAINER_ENGINE_KEY}' in {path} must not be empty")
    return tuple(parts)


def _bool_value(document: dict[str, Any], key: str, default: bool, path: Path) -> bool:
    value = document.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' in {path} must be true or false")
    return value


class ConfigStore:
    """On-disk configuration rooted at ``~/.config/codo``.

    Layout::

        codo.yaml                      default-image, container-engine, image-listing
        images/<name>/CodoDockerfile   Dockerfile template for <name>
        images/<name>/config.yaml      pass-gui, bind-working-dir
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def for_host(cls, host: HostContext) -> "ConfigStore":
        override = str(host.getenv(CONFIG_DIR_ENV) or "").strip()
        if override:
            return cls(Path(override).expanduser())
        return cls(host.home_directory() / ".config" / "codo")

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def images_dir(self) -> Path:
        return self.root / IMAGES_DIR_NAME

    def load(self) -> CodoConfig:
        path = self.config_file
        if not path.is_file():
            LOGGER.debug("No config file at %s; using defaults", path)
            return CodoConfig()
        try:
            document = _load_yaml_mapping(path)
        except (OSError, UnicodeError) as exc:
            raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc

        listing = _string_value(document, IMAGE_LISTING_KEY, LISTING_JSON, path).lower()
        if listing not in LISTING_CHOICES:
            raise ConfigError(
                f"'{IMAGE_LISTING_KEY}' in {path} must be one of {', '.join(LISTING_CHOICES)}, got {listing!r}"
            )
        return CodoConfig(
            default_image=_string_value(document, DEFAULT_IMAGE_KEY, DEFAULT_IMAGE, path),
            container_engine=_engine_value(document, path),
            image_listing=listing,
        )

    def image_config_dir(self, image_name: str) -> Path | None:
        candidate = self.images_dir / image_name
        if candidate.is_dir():
            return candidate
        return None

    def image_names(self) -> list[str]:
        if not self.images_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.images_dir.iterdir() if entry.is_dir())

    def image_settings(self, image_name: str) -> ImageSettings:
        image_dir = self.image_config_dir(image_name)
        if image_dir is None:
            return ImageSettings()
        path = image_dir / IMAGE_CONFIG_FILE_NAME
        if not path.is_file():
            return ImageSettings()
        try:
            document = _load_yaml_mapping(path)
            return ImageSettings(
                pass_gui=_bool_value(document, PASS_GUI_KEY, True, path),
                bind_working_dir=_bool_value(document, BIND_WORKING_DIR_KEY, True, path),
            )
        except (OSError, UnicodeError, yaml.YAMLError, ConfigError) as exc:
            LOGGER.warning("Failed to read %s config %s: %s; using defaults", image_name, path, exc)
            return ImageSettings()
