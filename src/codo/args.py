from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Sequence


@dataclass(frozen=True)
class SplitResult:
    wrapper_tokens: list[str]
    inner_command: list[str]
    split_index: int
    missing_value: str | None = None


def _value_flag_awaiting_value(token: str, value_flags: Collection[str]) -> str | None:
    """The value-taking flag ``token`` leaves waiting for the next token, if any.

    Bundled short flags (``-bi``) follow getopt rules: the first letter that
    takes a value consumes the rest of the bundle, so it only waits for the
    next token when it is the bundle's last letter.
    """
    if token in value_flags:
        return token
    if token.startswith("--") or len(token) < 3 or not token.startswith("-"):
        return None
    for position, letter in enumerate(token[1:], start=1):
        if f"-{letter}" in value_flags:
            return f"-{letter}" if position == len(token) - 1 else None
    return None


def split_invocation_args(args: Sequence[str], value_flags: Collection[str]) -> SplitResult:
    """Separate codo's own flags from the command to run in the container.

    Tokens are claimed for codo while they start with a dash, or while they
    are the value of a flag listed in ``value_flags``. The first token that is
    neither starts the inner command, and everything after it is forwarded
    verbatim, dashes included. ``codo -i ubuntu ls -la`` therefore runs
    ``ls -la`` in ``ubuntu``, while ``codo ls -i ubuntu`` runs
    ``ls -i ubuntu`` in the default image.

    Dash-prefixed tokens meant for the inner command cannot appear before its
    first plain token; they would be read as codo flags.
    """
    tokens = [str(arg) for arg in args]
    expects_value_for: str | None = None
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if expects_value_for is not None:
            expects_value_for = None
        elif not token.startswith("-"):
            break
        else:
            expects_value_for = _value_flag_awaiting_value(token, value_flags)
        index += 1

    return SplitResult(
        wrapper_tokens=tokens[:index],
        inner_command=tokens[index:],
        split_index=index,
        missing_value=expects_value_for,
    )
