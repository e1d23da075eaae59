"""
Compaction chain resolution.

A compaction record's ``trigger_entry_id`` points either at an entry or at
an earlier compaction record. Following those pointers from the newest
record yields the last entry the active summary covers; replay resumes
after it. Any break in the chain (a cycle,
a dangling id, or a chain deeper than ``MAX_CHAIN_DEPTH``) falls back to
replaying every entry. History is never dropped on a bad chain.
"""

from dataclasses import dataclass

import structlog

from ..storage.base import CompactionRecord, Entry

logger = structlog.get_logger()

MAX_CHAIN_DEPTH = 10


@dataclass(frozen=True)
class ChainResolution:
    """The active summary, the last entry it covers, and the active record."""

    summary: str | None = None
    start_entry_id: str | None = None
    record: CompactionRecord | None = None


def latest_record(records: list[CompactionRecord]) -> CompactionRecord | None:
    """Newest record by creation time; on a tie the later-inserted one wins."""
    if not records:
        return None
    index = max(range(len(records)), key=lambda i: (records[i].created_at, i))
    return records[index]


def resolve_compaction_chain(
    entries: list[Entry],
    records: list[CompactionRecord],
) -> ChainResolution:
    """Find the active summary and the oldest entry that must still be replayed."""
    active = latest_record(records)
    if active is None or not active.summary:
        return ChainResolution()

    entry_ids = {entry.id for entry in entries}
    records_by_id = {record.id: record for record in records}

    visited = {active.id}
    target = active.trigger_entry_id

    for _ in range(MAX_CHAIN_DEPTH):
        if target in entry_ids:
            return ChainResolution(active.summary, target, active)

        record = records_by_id.get(target)
        if record is None:
            logger.warning(
                "Compaction trigger matches no entry or record, replaying full history",
                record_id=active.id,
                trigger_id=target,
            )
            return ChainResolution(active.summary, None, active)

        if record.id in visited:
            logger.warning(
                "Compaction chain has a cycle, replaying full history",
                record_id=active.id,
                cycle_at=record.id,
            )
            return ChainResolution(active.summary, None, active)

        visited.add(record.id)
        target = record.trigger_entry_id

    logger.warning(
        "Compaction chain too deep, replaying full history",
        record_id=active.id,
        max_depth=MAX_CHAIN_DEPTH,
    )
    return ChainResolution(active.summary, None, active)
