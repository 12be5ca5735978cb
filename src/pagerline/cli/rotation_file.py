"""
Load a rotation definition from YAML for offline resolution.

Example::

    rotation:
      name: Platform primary
      layers:
        - name: weekly
          handoff_interval_hours: 168
          starts_at: 2024-01-01T09:00:00Z
          restrictions:
            days: [MON, TUE, WED, THU, FRI]
            startTime: "09:00"
            endTime: "17:00"
            timezone: Europe/Berlin
          participants:
            - alice
            - {id: bob, email: bob@example.com, phone_number: "+15550100"}
      overrides:
        - user: carol
          starts_at: 2024-01-03T00:00:00Z
          ends_at: 2024-01-04T00:00:00Z
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from pagerline.core.errors import ConfigurationError, NotFoundError, ValidationError
from pagerline.domain.models import Rotation


def _user(entry: str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(entry, str):
        return {"id": entry, "display_name": entry}
    return entry


def _participants(layer_id: str, entries: list[Any]) -> list[dict[str, Any]]:
    participants = []
    for index, entry in enumerate(entries):
        if isinstance(entry, dict) and "user" in entry:
            user = _user(entry["user"])
            position = entry.get("position", index)
        else:
            user = _user(entry)
            position = index
        participants.append(
            {
                "id": f"{layer_id}-p{index}",
                "layer_id": layer_id,
                "user": user,
                "position": position,
            }
        )
    return participants


def rotation_from_dict(data: dict[str, Any]) -> Rotation:
    body = data.get("rotation", data)
    rotation_id = str(body.get("id", "rotation"))

    layers = []
    for index, raw in enumerate(body.get("layers") or []):
        layer = dict(raw)
        layer_id = str(layer.setdefault("id", f"layer-{index}"))
        layer.setdefault("order", index)
        layer["rotation_id"] = rotation_id
        layer["participants"] = _participants(layer_id, layer.get("participants") or [])
        layers.append(layer)

    overrides = []
    for index, raw in enumerate(body.get("overrides") or []):
        override = dict(raw)
        override.setdefault("id", f"override-{index}")
        override["rotation_id"] = rotation_id
        override["user"] = _user(override.get("user") or override.pop("user_id", ""))
        overrides.append(override)

    try:
        return Rotation.model_validate(
            {
                "id": rotation_id,
                "name": body.get("name", rotation_id),
                "timezone": body.get("timezone", "UTC"),
                "description": body.get("description"),
                "layers": layers,
                "overrides": overrides,
            }
        )
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid rotation definition: {exc}") from exc


def load_rotation_file(path: str | Path) -> Rotation:
    file_path = Path(path)
    if not file_path.exists():
        raise NotFoundError(f"Rotation file not found: {file_path}", {"path": str(file_path)})
    try:
        data = yaml.safe_load(file_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Could not parse {file_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{file_path} must contain a mapping")
    return rotation_from_dict(data)
