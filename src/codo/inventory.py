from __future__ import annotations

import json
import logging
import re
from typing import Iterable

from codo.errors import ContainerEngineFailure
from codo.runner import CommandRunner


LOGGER = logging.getLogger("codo.inventory")
LOGGER.addHandler(logging.NullHandler())

LISTING_JSON = "json"
LISTING_TABLE = "table"
LISTING_CHOICES = (LISTING_JSON, LISTING_TABLE)

# The engine pads columns with spaces; single spaces occur inside values ("IMAGE ID", "2 weeks ago").
COLUMN_SEPARATOR = re.compile(r" {3,}")

JSON_FIELD_COLUMNS = {
    "Repository": "REPOSITORY",
    "Tag": "TAG",
    "ID": "IMAGE ID",
    "CreatedSince": "CREATED",
    "Size": "SIZE",
}

InventoryRecord = dict[str, str]
Inventory = dict[str, InventoryRecord]


def split_columns(line: str) -> list[str]:
    return [column.strip() for column in COLUMN_SEPARATOR.split(line) if column.strip()]


def inventory_key(record: InventoryRecord) -> str:
    return f"{record.get('REPOSITORY', '')}:{record.get('TAG', '')}"


def _index_records(records: Iterable[InventoryRecord]) -> Inventory:
    inventory: Inventory = {}
    for record in records:
        # Later rows replace earlier ones with the same repository:tag.
        inventory[inventory_key(record)] = record
    return inventory


def parse_image_table(text: str, *, command: Iterable[str] = ()) -> Inventory:
    lines = [line for line in str(text or "").splitlines() if line.strip()]
    if not lines:
        raise ContainerEngineFailure(command, None, detail="image listing has no header line")
    header = split_columns(lines[0])
    LOGGER.debug("Image listing header: %s", header)
    records = [dict(zip(header, split_columns(line))) for line in lines[1:]]
    return _index_records(records)


def _record_from_json(payload: dict[str, object]) -> InventoryRecord:
    record: InventoryRecord = {}
    for field_name, value in payload.items():
        column = JSON_FIELD_COLUMNS.get(field_name, field_name)
        record[column] = "" if value is None else str(value)
    return record


def parse_image_json_lines(text: str) -> Inventory:
    """Parse ``images --format '{{json .}}'`` output, one JSON object per line.

    Raises ValueError when a line is not a JSON object, which callers use to
    detect engines that ignored the format request.
    """
    records: list[InventoryRecord] = []
    for line in str(text or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        payload = json.loads(stripped)
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object per line, got {type(payload).__name__}")
        records.append(_record_from_json(payload))
    return _index_records(records)


def image_listing_command(engine: Iterable[str], listing: str = LISTING_JSON) -> list[str]:
    command = [*engine, "images"]
    if listing == LISTING_JSON:
        command.extend(["--format", "{{json .}}"])
    return command


def fetch_image_inventory(runner: CommandRunner, engine: Iterable[str], *, listing: str = LISTING_JSON) -> Inventory:
    """Snapshot the engine's local images as ``{"repository:tag": record}``.

    The structured listing is preferred. Output that is not JSON lines is read
    as the engine's padded text table instead, so engines without ``--format``
    support keep working.
    """
    if listing not in LISTING_CHOICES:
        raise ValueError(f"Unknown image listing mode: {listing!r}")
    command = image_listing_command(engine, listing)
    output = runner.run(command, capture_output=True)

    if listing == LISTING_JSON:
        try:
            inventory = parse_image_json_lines(output)
        except ValueError:
            LOGGER.debug("Image listing is not JSON lines; parsing it as a table")
            inventory = parse_image_table(output, command=command)
    else:
        inventory = parse_image_table(output, command=command)
    LOGGER.debug("Image inventory: %s", sorted(inventory))
    return inventory
