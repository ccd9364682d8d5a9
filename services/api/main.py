import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import redis
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from frontier.infra.redis_streams import SimChannels
from frontier.models import (
    CommandKind,
    FleetRole,
    StationKind,
    StationVerb,
    TaskType,
)
from frontier.orders import screen_payloads
from frontier.savegame import restore_world


@dataclass(frozen=True)
class ApiConfig:
    redis_url: str | None
    cors_allow_origins: str
    command_maxlen: int
    port: int


def _load_config() -> ApiConfig:
    return ApiConfig(
        redis_url=os.environ.get("REDIS_URL"),
        cors_allow_origins=os.environ.get("CORS_ALLOW_ORIGINS", "*"),
        command_maxlen=int(os.environ.get("COMMAND_STREAM_MAXLEN", "5000")),
        port=int(os.environ.get("PORT", "8000")),
    )


_CONFIG = _load_config()
logger = logging.getLogger("frontier.api")

# Redis channels (async), sharing the worker's stream/key names.
channels = SimChannels(url=_CONFIG.redis_url)

app = FastAPI(title="Frontier API", version="0.1.0")

cors_origins = _CONFIG.cors_allow_origins
origins = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CommandIn(BaseModel):
    """
    Structural shape of a player/debug command. Ids and transitions are
    checked against the worker's last committed world on submit, and again
    by the worker at the tick boundary.
    """

    kind: CommandKind
    fleet_id: int | None = Field(None, description="Fleet the command targets")
    station_id: int | None = Field(None, description="Station for StationVerb")
    zone_id: int | None = Field(None, description="Zone for intents, builds, refresh and debug")
    target_id: int | None = Field(None, description="Station, base or derelict id")
    task: TaskType | None = None
    layer: int | None = Field(None, description="Knowledge layer 0..4")
    tier: str | None = Field(None, description="Risk tolerance or autonomy tier")
    weights: Dict[str, float] | None = None
    verb: StationVerb | None = None
    station_kind: StationKind | None = None
    role: FleetRole | None = None
    spawn: str | None = Field(None, description="pirate_group | station | fleet")


class CommandsPayload(BaseModel):
    """Payload for posting one or more commands to the worker."""

    commands: List[CommandIn]
    source: str = Field("player", description="player | debug")


@app.get("/health")
async def health() -> Dict[str, str]:
    try:
        await channels.ping()
    except redis.exceptions.RedisError as exc:  # type: ignore[attr-defined]
        raise HTTPException(status_code=503, detail=f"redis error: {exc}") from exc
    return {"status": "ok"}


@app.get("/snapshot")
async def snapshot() -> Dict[str, Any]:
    """
    Return the latest world snapshot saved by the simulation worker.
    """
    snap = await channels.latest_frame()
    if not snap:
        raise HTTPException(status_code=404, detail="no snapshot yet")
    return snap


@app.get("/events")
async def events(after: str = "0-0", count: int = 100) -> List[Dict[str, Any]]:
    """
    Stream events after a given stream id. Events are published as JSON under the
    'data' field by the simulation worker.
    """
    return await channels.frames_after(after=after, count=count)


@app.get("/problems")
async def problems(limit: Optional[int] = None) -> Dict[str, Any]:
    """
    The problems feed from the latest snapshot: crisis, failure and
    fleet-decision lines meant for the player.
    """
    snap = await channels.latest_frame()
    if not snap:
        raise HTTPException(status_code=404, detail="no snapshot yet")
    lines = snap.get("problems", [])
    if limit is not None:
        lines = lines[-limit:] if limit > 0 else []
    return {"tick": snap.get("tick"), "problems": lines}


class CommandVerdict(BaseModel):
    accepted: bool
    reason: str | None = None
    detail: str | None = None


class CommandsAccepted(BaseModel):
    id: str | None = Field(None, description="Stream id of the queued batch; None when nothing was queued")
    tick: int | None = Field(None, description="Tick of the world the batch was checked against")
    results: List[CommandVerdict]


async def _committed_world():
    save = await channels.latest_world_save()
    if save is None:
        return None
    try:
        return restore_world(save)
    except ValueError as exc:
        # pydantic's ValidationError is a ValueError; fall back to shape checks
        logger.warning("stored world save unreadable: %s", exc)
        return None


@app.post("/commands")
async def post_commands(payload: CommandsPayload) -> CommandsAccepted:
    """
    Check each command against the worker's last committed world and append
    the accepted ones to the Redis command stream. Rejections come back
    immediately with their reason code; accepted commands are checked once
    more at the tick boundary.
    """
    items = [cmd.model_dump(mode="json", exclude_none=True) for cmd in payload.commands]
    world = await _committed_world()
    results = screen_payloads(world, items)
    accepted = [item for item, result in zip(items, results) if result.accepted]

    msg_id = None
    if accepted:
        msg_id = await channels.submit_commands(accepted, payload.source, _CONFIG.command_maxlen)
    return CommandsAccepted(
        id=msg_id,
        tick=world.tick if world is not None else None,
        results=[CommandVerdict(accepted=r.accepted, reason=r.reason, detail=r.detail) for r in results],
    )


if __name__ == "__main__":
    uvicorn.run("services.api.main:app", host="0.0.0.0", port=_CONFIG.port, reload=False)
