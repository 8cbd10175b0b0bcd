from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from codo.host import HostContext


LOGGER = logging.getLogger("codo.tagging")
LOGGER.addHandler(logging.NullHandler())

CODO_TAG = "codo"
DEFAULT_TAG_PREFIX = "latest"


@dataclass(frozen=True)
class ImageSpec:
    base_name: str
    tag: str

    @property
    def full_name(self) -> str:
        return f"{self.base_name}:{self.tag}"


def _sanitize_tag_component(value: str) -> str:
    sanitized = re.sub(r"[^A-Za-z0-9_.-]", "-", value)
    return sanitized.strip("-.")


def _username_text(host: HostContext) -> str | None:
    user = host.current_user()
    if user is None:
        LOGGER.error("Failed to resolve the current user; using the shared '%s' tag", CODO_TAG)
        return None
    try:
        user.name.encode("utf-8")
    except (AttributeError, UnicodeError):
        LOGGER.error("Failed to get username as text for uid %s", user.uid)
        return None
    name = _sanitize_tag_component(user.name)
    if not name:
        LOGGER.error("Username %r has no characters usable in an image tag", user.name)
        return None
    return name


def codo_tag(host: HostContext) -> str:
    """Tag suffix that keeps one host user's builds from replacing another's."""
    username = _username_text(host)
    if username is None:
        return CODO_TAG
    return f"{CODO_TAG}-{username}"


def _split_reference(image_name: str) -> tuple[str, str | None, str | None]:
    name, _, digest = image_name.partition("@")
    last_slash = name.rfind("/")
    last_colon = name.rfind(":")
    if last_colon > last_slash:
        return name[:last_colon], name[last_colon + 1 :] or None, digest or None
    return name, None, digest or None


def image_spec(image_name: str, host: HostContext) -> ImageSpec:
    base_name, explicit_tag, digest = _split_reference(image_name)
    suffix = codo_tag(host)
    if digest:
        algorithm, _, value = digest.partition(":")
        prefix = _sanitize_tag_component(f"{algorithm}-{value[:12]}") if value else _sanitize_tag_component(algorithm)
        return ImageSpec(base_name=base_name, tag=f"{prefix or DEFAULT_TAG_PREFIX}-{suffix}")
    if explicit_tag:
        return ImageSpec(base_name=base_name, tag=f"{explicit_tag}-{suffix}")
    return ImageSpec(base_name=base_name, tag=f"{DEFAULT_TAG_PREFIX}-{suffix}")


def tagged_image_name(image_name: str, host: HostContext) -> str:
    return image_spec(image_name, host).full_name
