"""
Pattern snapshot persistence.

The learner's state is saved as one JSON document per section under a key
prefix of an abstract key-value store:

    <prefix>/meta          {"version": 1, "savedAt": ...}
    <prefix>/patterns      [LearnedPattern, ...]
    <prefix>/species       [SpeciesFeatureStats, ...]
    <prefix>/corrections   [PositionCorrection, ...]
    <prefix>/rejections    [RejectionRecord, ...]
    <prefix>/prompts       [PromptRecord, ...]

Persistence is best-effort. Save and load failures are logged and reported
through return values, never raised: in-memory state stays authoritative.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from loguru import logger

from adaptive_engine.core.mastery import utc_now

SNAPSHOT_VERSION = 1
SECTIONS = ("patterns", "species", "corrections", "rejections", "prompts")


class KeyValueStore(Protocol):
    """Storage collaborator for snapshots."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def list_by_prefix(self, prefix: str) -> dict[str, str]:
        ...


class InMemoryKeyValueStore:
    """Dict-backed KeyValueStore."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def list_by_prefix(self, prefix: str) -> dict[str, str]:
        return {k: v for k, v in self.data.items() if k.startswith(prefix)}


class PatternSnapshotStore:
    """Versioned save/load of learner snapshots over a KeyValueStore."""

    def __init__(self, kv: KeyValueStore, prefix: str = "pattern-learning"):
        self.kv = kv
        self.prefix = prefix.rstrip("/")

    def key(self, section: str) -> str:
        return f"{self.prefix}/{section}"

    async def save(self, snapshot: dict[str, list[dict[str, Any]]]) -> bool:
        """
        Write every section, then the meta record.

        Meta goes last, so a store that has never held a complete snapshot
        never shows a version marker. A later save that fails partway can
        leave the previous meta beside a mix of new and old sections; the
        next successful save rewrites every section.

        Returns:
            True if the snapshot was written, False if the store failed
        """
        try:
            for section in SECTIONS:
                await self.kv.set(self.key(section), json.dumps(snapshot.get(section, [])))
            meta = {"version": SNAPSHOT_VERSION, "savedAt": utc_now().isoformat()}
            await self.kv.set(self.key("meta"), json.dumps(meta))
        except Exception:  # Intentionally broad - any store failure is non-fatal
            logger.exception(f"Failed to persist pattern snapshot under '{self.prefix}'")
            return False

        logger.debug(
            f"Pattern snapshot saved: {len(snapshot.get('patterns', []))} patterns, "
            f"{len(snapshot.get('species', []))} species"
        )
        return True

    async def load(self) -> dict[str, list[dict[str, Any]]] | None:
        """
        Read the snapshot.

        Returns:
            Section name -> list of records, or None when there is no usable snapshot
        """
        try:
            entries = await self.kv.list_by_prefix(f"{self.prefix}/")
        except Exception:  # Intentionally broad - any store failure is non-fatal
            logger.exception(f"Failed to read pattern snapshot under '{self.prefix}'")
            return None

        raw_meta = entries.get(self.key("meta"))
        if raw_meta is None:
            logger.info(f"No pattern snapshot under '{self.prefix}'; starting fresh")
            return None

        try:
            meta = json.loads(raw_meta)
            version = int(meta.get("version", 0))
            if version > SNAPSHOT_VERSION:
                logger.warning(
                    f"Pattern snapshot version {version} is newer than supported "
                    f"({SNAPSHOT_VERSION}); ignoring it"
                )
                return None
            return {
                section: json.loads(entries.get(self.key(section)) or "[]")
                for section in SECTIONS
            }
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Unreadable pattern snapshot under '{self.prefix}': {e}")
            return None
