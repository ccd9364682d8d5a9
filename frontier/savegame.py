"""
Save / load of a running world.

The save is the World dataclass dumped to JSON-compatible data through a
pydantic TypeAdapter, so loading validates every record back into the
same types. Station records also carry the type and stage of their open
crisis for human readers; those two keys are dropped again on load.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from pydantic import TypeAdapter

from frontier.crisis import open_crises
from frontier.models import World

logger = logging.getLogger("frontier.savegame")

SAVE_VERSION = 1
WORLD_ADAPTER = TypeAdapter(World)
DERIVED_STATION_KEYS = ("crisis_type", "crisis_stage")


def dump_world(world: World) -> Dict[str, Any]:
    data = WORLD_ADAPTER.dump_python(world, mode="json")
    for key, record in data["stations"].items():
        crises = open_crises(world, int(key))
        latest = crises[-1] if crises else None
        record["crisis_type"] = latest.crisis_type.value if latest else None
        record["crisis_stage"] = latest.stage.value if latest else None
    return {"version": SAVE_VERSION, "world": data}


def restore_world(payload: Dict[str, Any]) -> World:
    version = payload.get("version")
    if version != SAVE_VERSION:
        raise ValueError(f"unsupported save version {version!r}")
    data = dict(payload["world"])
    data["stations"] = {
        key: {k: v for k, v in record.items() if k not in DERIVED_STATION_KEYS}
        for key, record in data.get("stations", {}).items()
    }
    return WORLD_ADAPTER.validate_python(data)


def save_world(world: World, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_text(json.dumps(dump_world(world), indent=1), encoding="utf-8")
    tmp.replace(target)
    logger.info("saved tick %s to %s", world.tick, target)
    return target


def load_world(path: str | Path) -> World:
    world = restore_world(json.loads(Path(path).read_text(encoding="utf-8")))
    logger.info("loaded tick %s from %s", world.tick, path)
    return world
