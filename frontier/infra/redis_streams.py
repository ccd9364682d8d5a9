#!/usr/bin/env python3
"""
Redis channels between the simulation worker and the API.

Four keys carry a run:

    command stream   player/debug batches, read by the worker's consumer group
    event stream     one frame (snapshot or delta) per tick plus rejections
    snapshot hash    the latest frame and the committed world save
    lease key        which worker is allowed to advance the run

Every stream entry stores its JSON under the single field ``data``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import ResponseError

from frontier.models import REDIS_SETTINGS

_RENEW_LEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('PEXPIRE', KEYS[1], ARGV[2])
else
    return 0
end
"""

_RELEASE_LEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


@dataclass
class CommandBatch:
    """One command-stream entry: raw command payloads tagged with their source."""

    entry_id: str
    commands: List[Dict[str, Any]] = field(default_factory=list)
    source: str = "player"

    @classmethod
    def from_entry(cls, entry_id: str, fields: Dict[str, str]) -> "CommandBatch":
        body = unpack(fields)
        source = str(body.get("source", "player"))
        commands = []
        for item in body.get("commands", []):
            if isinstance(item, dict):
                commands.append({"source": source, **item})
        return cls(entry_id=entry_id, commands=commands, source=source)


def pack(payload: Dict[str, Any]) -> Dict[str, str]:
    return {"data": json.dumps(payload)}


def unpack(fields: Dict[str, str]) -> Dict[str, Any]:
    raw = fields.get("data")
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return body if isinstance(body, dict) else {}


class SimChannels:
    def __init__(
        self,
        url: str | None = None,
        command_stream: str | None = None,
        event_stream: str | None = None,
        snapshot_key: str | None = None,
    ) -> None:
        self.url = url or str(REDIS_SETTINGS.redis_url)
        self.command_stream = command_stream or REDIS_SETTINGS.command_stream
        self.event_stream = event_stream or REDIS_SETTINGS.event_stream
        self.snapshot_key = snapshot_key or REDIS_SETTINGS.snapshot_key
        # decode_responses=True so we deal with str, not bytes
        self._redis = aioredis.from_url(self.url, decode_responses=True)

    @property
    def client(self):
        return self._redis

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()

    # --- Commands (API -> worker) ---
    async def submit_commands(self, commands: List[Dict[str, Any]], source: str, maxlen: int) -> str:
        return await self._redis.xadd(
            name=self.command_stream,
            fields=pack({"commands": commands, "source": source}),
            maxlen=maxlen,
            approximate=True,
        )

    async def join_command_group(self, group: str) -> None:
        try:
            await self._redis.xgroup_create(self.command_stream, group, id="0", mkstream=True)
        except ResponseError as exc:
            # the group survives worker restarts
            if "BUSYGROUP" not in str(exc):
                raise

    async def claim_commands(self, group: str, consumer: str, count: int, block_ms: int) -> List[CommandBatch]:
        """Batches not yet delivered to this group, oldest first."""
        entries = await self._redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={self.command_stream: ">"},
            count=count,
            block=block_ms,
        )
        batches: List[CommandBatch] = []
        for _, messages in entries or []:
            batches.extend(CommandBatch.from_entry(entry_id, fields) for entry_id, fields in messages)
        return batches

    async def settle(self, group: str, entry_ids: Iterable[str]) -> None:
        pending = list(entry_ids)
        if pending:
            await self._redis.xack(self.command_stream, group, *pending)

    # --- Frames and rejections (worker -> API) ---
    async def publish(self, payload: Dict[str, Any], maxlen: int) -> str:
        return await self._redis.xadd(
            name=self.event_stream,
            fields=pack(payload),
            maxlen=maxlen,
            approximate=True,
        )

    async def publish_rejection(
        self, tick: int, command: Dict[str, Any], reason: Optional[str], detail: Optional[str], maxlen: int
    ) -> str:
        return await self.publish(
            {"type": "command_rejected", "tick": tick, "command": command, "reason": reason, "detail": detail},
            maxlen,
        )

    async def frames_after(self, after: str = "0-0", count: int = 100) -> List[Dict[str, Any]]:
        """Published entries strictly after ``after``, each tagged with its stream id."""
        entries = await self._redis.xread(streams={self.event_stream: after}, count=count)
        out: List[Dict[str, Any]] = []
        for _, messages in entries or []:
            for entry_id, fields in messages:
                out.append({**unpack(fields), "id": entry_id})
        return out

    # --- Latest committed state ---
    async def store_latest(self, frame: Dict[str, Any], world_save: Optional[Dict[str, Any]] = None) -> None:
        mapping = {"frame": json.dumps(frame), "tick": str(frame.get("tick", 0))}
        if world_save is not None:
            mapping["world"] = json.dumps(world_save)
        await self._redis.hset(self.snapshot_key, mapping=mapping)

    async def latest_frame(self) -> Optional[Dict[str, Any]]:
        raw = await self._redis.hget(self.snapshot_key, "frame")
        return json.loads(raw) if raw else None

    async def latest_world_save(self) -> Optional[Dict[str, Any]]:
        raw = await self._redis.hget(self.snapshot_key, "world")
        return json.loads(raw) if raw else None

    # --- Run lease ---
    async def acquire_lease(self, key: str, holder: str, ttl_ms: int) -> bool:
        return bool(await self._redis.set(name=key, value=holder, nx=True, px=ttl_ms))

    async def renew_lease(self, key: str, holder: str, ttl_ms: int) -> bool:
        return await self._redis.eval(_RENEW_LEASE, 1, key, holder, ttl_ms) == 1

    async def release_lease(self, key: str, holder: str) -> None:
        await self._redis.eval(_RELEASE_LEASE, 1, key, holder)
