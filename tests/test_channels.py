"""Stream entry encoding shared by the worker and the API (no live Redis needed)."""

from frontier.infra.redis_streams import CommandBatch, pack, unpack


def test_batch_tags_every_command_with_its_source():
    fields = pack({"source": "debug", "commands": [{"kind": "DebugReveal", "zone_id": 3}, "junk"]})

    batch = CommandBatch.from_entry("1-0", fields)

    assert batch.entry_id == "1-0"
    assert batch.source == "debug"
    assert batch.commands == [{"source": "debug", "kind": "DebugReveal", "zone_id": 3}]


def test_unreadable_entries_decode_to_empty_batches():
    assert unpack({}) == {}
    assert unpack({"data": "{not json"}) == {}
    assert unpack({"data": "[1, 2]"}) == {}
    assert CommandBatch.from_entry("2-0", {"data": "{not json"}).commands == []
