#!/usr/bin/env python3
"""
Simulation worker for the frontier core.

This worker owns the in-memory world, consumes player commands from Redis,
advances the world one fixed tick per loop, and publishes snapshots/deltas
back to Redis. A Redis lease ensures only one worker advances a given run
at a time.
"""
from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
from dataclasses import dataclass
from typing import List, Tuple

from frontier.errors import CommandRejected
from frontier.helper.world_helpers import load_sector_file
from frontier.infra.redis_streams import SimChannels
from frontier.models import RUNTIME_SETTINGS, SIM_CONFIG, Command, World
from frontier.orders import CommandQueue, parse_command
from frontier.savegame import dump_world, load_world, save_world
from frontier.state_utils import snapshot_from_world
from frontier.world import advance_world


@dataclass(frozen=True)
class WorkerConfig:
    event_maxlen: int
    snapshot_every: int
    command_block_ms: int
    lease_key: str
    lease_ttl_ms: int
    worker_id: str
    command_group: str
    command_consumer: str


def _load_config() -> WorkerConfig:
    return WorkerConfig(
        event_maxlen=int(os.environ.get("EVENT_STREAM_MAXLEN", 5000)),
        snapshot_every=int(os.environ.get("SNAPSHOT_EVERY", 1)),
        command_block_ms=int(os.environ.get("COMMAND_BLOCK_MS", 50)),
        lease_key=os.environ.get("LEASE_KEY", "frontier:lease"),
        lease_ttl_ms=int(os.environ.get("LEASE_TTL_MS", SIM_CONFIG.simulation.lease_ttl_ms)),
        worker_id=os.environ.get("WORKER_ID", socket.gethostname()),
        command_group=os.environ.get("COMMAND_GROUP", "sim"),
        command_consumer=os.environ.get("COMMAND_CONSUMER", f"sim-{os.getpid()}"),
    )


_CONFIG = _load_config()

TICK_DELAY: float = SIM_CONFIG.simulation.tick_delay


def _initial_world() -> World:
    save_path = RUNTIME_SETTINGS.save_path
    if save_path is not None and save_path.exists():
        print(f"[sim-worker] resuming from {save_path}")
        return load_world(save_path)
    print(f"[sim-worker] loading sector {RUNTIME_SETTINGS.sector_path}")
    return load_sector_file(RUNTIME_SETTINGS.sector_path)


class SimulationWorker:
    def __init__(self) -> None:
        self.channels = SimChannels()
        self.world: World = _initial_world()
        self.queue = CommandQueue()
        self.consumer_group = _CONFIG.command_group
        self.consumer_name = _CONFIG.command_consumer
        self._stop = asyncio.Event()
        self.lease_key = _CONFIG.lease_key
        self.lease_ttl_ms = _CONFIG.lease_ttl_ms
        self.worker_id = _CONFIG.worker_id
        self._last_frame: dict | None = None

    async def setup(self) -> None:
        await self.channels.join_command_group(self.consumer_group)
        if not await self._acquire_lease():
            raise RuntimeError("lease already held; refusing to start")
        print(f"[sim-worker] lease acquired key={self.lease_key} holder={self.worker_id}")

    async def _ensure_initial_snapshot(self) -> None:
        if self._last_frame is not None:
            return
        frame = snapshot_from_world(self.world, tick_delay=TICK_DELAY)
        await self.channels.store_latest(frame, dump_world(self.world))
        await self.channels.publish({"type": "snapshot", "data": frame}, _CONFIG.event_maxlen)
        self._last_frame = frame

    async def _collect_commands(self) -> Tuple[List[Command], List[str]]:
        """
        Pull commands from the Redis stream, validate them against the
        committed world and queue the valid ones. Returns (commands, ids_to_ack).
        """
        batches = await self.channels.claim_commands(
            self.consumer_group, self.consumer_name, count=50, block_ms=_CONFIG.command_block_ms
        )
        ids: List[str] = []
        for batch in batches:
            ids.append(batch.entry_id)
            for item in batch.commands:
                try:
                    cmd = parse_command(item)
                except CommandRejected as exc:
                    await self._publish_rejection(item, exc.reason, exc.detail)
                    continue
                result = self.queue.submit(self.world, cmd)
                if not result.accepted:
                    await self._publish_rejection(item, result.reason, result.detail)
        return self.queue.drain(), ids

    async def _publish_rejection(self, item: dict, reason: str | None, detail: str | None) -> None:
        await self.channels.publish_rejection(self.world.tick, item, reason, detail, _CONFIG.event_maxlen)

    async def tick_once(self) -> None:
        commands, to_ack = await self._collect_commands()
        summary = advance_world(self.world, commands)

        frame = snapshot_from_world(self.world, tick_delay=TICK_DELAY)
        frame["commands_applied"] = len(commands) - len(summary.rejected_commands)
        event_payload = self._build_event(frame)
        event_payload["summary"] = {
            "transitions": summary.transitions,
            "crises_opened": summary.crises_opened,
            "crises_resolved": summary.crises_resolved,
            "decisions": summary.decisions,
            "pirate_spawns": summary.pirate_spawns,
            "consequences": summary.consequences,
            "rejected_commands": summary.rejected_commands,
        }
        await self.channels.publish(event_payload, _CONFIG.event_maxlen)
        if self.world.tick % _CONFIG.snapshot_every == 0:
            await self.channels.store_latest(frame, dump_world(self.world))
        self._last_frame = frame

        if to_ack:
            await self.channels.settle(self.consumer_group, to_ack)

        save_path = RUNTIME_SETTINGS.save_path
        if save_path is not None and self.world.tick % RUNTIME_SETTINGS.save_every_ticks == 0:
            save_world(self.world, save_path)

    def _build_event(self, frame: dict) -> dict:
        """
        Build a delta event relative to the previous frame to reduce payload size.
        If no previous frame exists, emit a full snapshot event.
        """
        if self._last_frame is None:
            return {"type": "snapshot", "data": frame}
        delta = self._compute_delta(self._last_frame, frame)
        delta["type"] = "delta"
        return delta

    @staticmethod
    def _diff_records(prev: list, curr: list) -> Tuple[list, list]:
        old_by_id = {r["id"]: r for r in prev}
        new_by_id = {r["id"]: r for r in curr}
        removed = [rid for rid in old_by_id if rid not in new_by_id]
        changed = [r for rid, r in new_by_id.items() if old_by_id.get(rid) != r]
        return changed, removed

    def _compute_delta(self, prev: dict, curr: dict) -> dict:
        """
        Changed zones (id + changed fields), changed stations/fleets (full),
        removed fleet ids, the open crisis list and the feed tails.
        """
        delta: dict = {
            "tick": curr.get("tick"),
            "tick_delay_ms": curr.get("tick_delay_ms"),
            "run_clock": curr.get("run_clock"),
            "epoch": curr.get("epoch"),
        }

        prev_zones = {z["id"]: z for z in prev.get("zones", [])}
        changed_zones = []
        for zone in curr.get("zones", []):
            old = prev_zones.get(zone["id"], {})
            changes = {k: v for k, v in zone.items() if old.get(k) != v}
            if changes:
                changes["id"] = zone["id"]
                changed_zones.append(changes)
        if changed_zones:
            delta["changed_zones"] = changed_zones

        changed_stations, _ = self._diff_records(prev.get("stations", []), curr.get("stations", []))
        if changed_stations:
            delta["changed_stations"] = changed_stations

        changed_fleets, removed_fleets = self._diff_records(prev.get("fleets", []), curr.get("fleets", []))
        if changed_fleets:
            delta["changed_fleets"] = changed_fleets
        if removed_fleets:
            delta["removed_fleets"] = removed_fleets

        delta["crises"] = curr.get("crises", [])
        delta["bases"] = curr.get("bases", [])
        delta["events"] = curr.get("events", [])
        delta["problems"] = curr.get("problems", [])
        return delta

    async def _acquire_lease(self) -> bool:
        return await self.channels.acquire_lease(self.lease_key, self.worker_id, self.lease_ttl_ms)

    async def _renew_lease(self) -> bool:
        return await self.channels.renew_lease(self.lease_key, self.worker_id, self.lease_ttl_ms)

    async def _release_lease(self) -> None:
        await self.channels.release_lease(self.lease_key, self.worker_id)

    async def run(self) -> None:
        try:
            await self.setup()
        except RuntimeError as exc:
            print(f"[sim-worker] {exc}")
            return

        print(
            f"[sim-worker] starting loop worker_id={self.worker_id} "
            f"tick_delay={TICK_DELAY}s lease_key={self.lease_key}"
        )
        await self._ensure_initial_snapshot()
        try:
            while not self._stop.is_set():
                if not await self._renew_lease():
                    reacquired = await self._acquire_lease()
                    if reacquired:
                        print("[sim-worker] lease reacquired after early lapse")
                    else:
                        print("[sim-worker] lost lease (pre-tick); stopping")
                        break

                try:
                    await self.tick_once()
                except Exception as exc:  # pragma: no cover - background safety
                    logging.getLogger("frontier.worker").exception("tick %s failed", self.world.tick)
                    print(f"[sim-worker] error during tick: {exc}")

                await asyncio.sleep(TICK_DELAY)
        finally:
            save_path = RUNTIME_SETTINGS.save_path
            if save_path is not None:
                save_world(self.world, save_path)
            await self._release_lease()
            await self.channels.close()
            print("[sim-worker] stopping loop")

    def stop(self) -> None:
        self._stop.set()


async def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    worker = SimulationWorker()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
