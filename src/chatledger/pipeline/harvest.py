"""
Harvest orchestrator.

Runs provider adapters against the store: discovery and extraction run in
parallel worker threads (read-only), and every extracted record is then
reconciled in its own unit of work on the store's single writer lane.

A source that fails to extract is reported in the summary and skipped; it
never aborts the rest of the harvest.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from chatledger.config import settings
from chatledger.db.store import Store, UnitOfWork
from chatledger.exceptions import ChatLedgerError, ExtractionError
from chatledger.models.records import ProviderSessionRecord, SourceLocation
from chatledger.pipeline.normalizer import NormalizeOutcome, Normalizer
from chatledger.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass
class SourceOutcome:
    """Result for one discovered source location."""

    provider: str
    location: str
    sessions: list[NormalizeOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        """ok, partial (some sessions stored despite errors) or failed."""
        if not self.errors:
            return "ok"
        return "partial" if self.sessions else "failed"

    @property
    def success(self) -> bool:
        return self.status == "ok"

    @property
    def error(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None


@dataclass
class HarvestSummary:
    """Per-source results and totals of one harvest run."""

    workspace_id: Optional[uuid.UUID] = None
    sources: list[SourceOutcome] = field(default_factory=list)
    version_before: int = 0
    version_after: int = 0
    duration_ms: int = 0

    def _sessions(self) -> list[NormalizeOutcome]:
        return [s for source in self.sources for s in source.sessions]

    @property
    def sources_ok(self) -> int:
        return sum(1 for s in self.sources if s.success)

    @property
    def sources_partial(self) -> int:
        return sum(1 for s in self.sources if s.status == "partial")

    @property
    def sources_failed(self) -> int:
        return sum(1 for s in self.sources if s.status == "failed")

    @property
    def sessions_created(self) -> int:
        return sum(1 for s in self._sessions() if s.status == "created")

    @property
    def sessions_updated(self) -> int:
        return sum(1 for s in self._sessions() if s.status == "updated")

    @property
    def sessions_unchanged(self) -> int:
        return sum(1 for s in self._sessions() if s.status == "unchanged")

    @property
    def messages_added(self) -> int:
        return sum(s.messages_added for s in self._sessions())

    @property
    def branches_created(self) -> int:
        return sum(len(s.branches_created) for s in self._sessions())

    @property
    def failures(self) -> list[SourceOutcome]:
        return [s for s in self.sources if not s.success]

    def to_dict(self) -> dict:
        return {
            "workspace_id": str(self.workspace_id) if self.workspace_id else None,
            "sources_ok": self.sources_ok,
            "sources_partial": self.sources_partial,
            "sources_failed": self.sources_failed,
            "sessions_created": self.sessions_created,
            "sessions_updated": self.sessions_updated,
            "sessions_unchanged": self.sessions_unchanged,
            "messages_added": self.messages_added,
            "branches_created": self.branches_created,
            "version_before": self.version_before,
            "version_after": self.version_after,
            "failures": [
                {
                    "provider": s.provider,
                    "location": s.location,
                    "status": s.status,
                    "errors": s.errors,
                }
                for s in self.failures
            ],
        }


def resolve_workspace(
    store: Store,
    path: Optional[str],
    provider: Optional[str] = None,
    name: Optional[str] = None,
) -> uuid.UUID:
    """Get or create the workspace for a (path, provider) pair; returns its id."""

    def _resolve(uow: UnitOfWork) -> uuid.UUID:
        workspace, created = uow.workspaces.get_or_create(
            str(Path(path).expanduser()) if path else None, provider, name
        )
        if created:
            logger.info(f"Created workspace {workspace.name!r} ({workspace.id})")
        return workspace.id

    return store.run(_resolve)


def _extract(
    adapter: ProviderAdapter, location: SourceLocation
) -> list[ProviderSessionRecord]:
    try:
        return list(adapter.extract(location))
    except ExtractionError:
        raise
    except Exception as e:
        # Adapters that fail without wrapping still only lose this source
        raise ExtractionError(location.uri, f"{type(e).__name__}: {e}") from e


def _record_key(record: ProviderSessionRecord) -> Optional[tuple[str, str]]:
    if not record.provider_session_id:
        return None
    return record.provider, record.provider_session_id


def harvest(
    store: Store,
    adapters: Iterable[ProviderAdapter],
    workspace_id: Optional[uuid.UUID] = None,
    max_workers: Optional[int] = None,
    normalizer: Optional[Normalizer] = None,
) -> HarvestSummary:
    """
    Harvest every source of the given adapters into one workspace.

    When several records carry the same provider session id, each one's
    turns are stored but only the last (in discovery order) decides the
    session's live path, so harvesting unchanged sources again is a no-op.

    Args:
        store: Target store
        adapters: Adapters to discover and extract from
        workspace_id: Workspace new sessions are created in (None = unassigned)
        max_workers: Extraction threads (defaults to settings.harvest_max_workers)
        normalizer: Custom normalizer (e.g. with branching disabled)

    Returns:
        HarvestSummary with per-source ok/partial/failed results and totals
    """
    started = time.time()
    normalizer = normalizer or Normalizer(store)
    summary = HarvestSummary(
        workspace_id=workspace_id, version_before=store.sync.current_version()
    )

    jobs: list[tuple[ProviderAdapter, SourceLocation]] = []
    for adapter in adapters:
        name = adapter.metadata.name
        try:
            locations = list(adapter.discover())
        except OSError as e:
            logger.warning(f"Discovery failed for {name}: {e}")
            summary.sources.append(
                SourceOutcome(provider=name, location="*", errors=[str(e)])
            )
            continue
        logger.info(f"{name}: discovered {len(locations)} source(s)")
        jobs.extend((adapter, location) for location in locations)

    workers = max(1, max_workers or settings.harvest_max_workers)
    extracted: dict[int, tuple[SourceOutcome, list[ProviderSessionRecord]]] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(_extract, adapter, location): index
            for index, (adapter, location) in enumerate(jobs)
        }
        for future in as_completed(futures):
            index = futures[future]
            adapter, location = jobs[index]
            source = SourceOutcome(
                provider=adapter.metadata.name, location=location.uri
            )
            records: list[ProviderSessionRecord] = []
            try:
                records = future.result()
            except ExtractionError as e:
                logger.warning(f"Skipping {location.uri}: {e.reason}")
                source.errors.append(e.reason)
            extracted[index] = (source, records)

    # Reconcile in discovery order so runs are deterministic
    order = sorted(extracted)
    last_seen: dict[tuple[str, str], tuple[int, int]] = {}
    for index in order:
        for position, record in enumerate(extracted[index][1]):
            key = _record_key(record)
            if key is not None:
                if key in last_seen:
                    logger.info(
                        f"Session {key[0]}:{key[1]} appears in more than one "
                        f"record; the last one sets its live path"
                    )
                last_seen[key] = (index, position)

    for index in order:
        source, records = extracted[index]
        for position, record in enumerate(records):
            key = _record_key(record)
            switch_live = key is None or last_seen[key] == (index, position)
            try:
                source.sessions.append(
                    normalizer.normalize(record, workspace_id, switch_live=switch_live)
                )
            except ChatLedgerError as e:
                logger.error(
                    f"Failed to store session {record.provider_session_id!r} "
                    f"from {source.location}: {e}"
                )
                source.errors.append(f"{record.provider_session_id}: {e.message}")
            except Exception as e:
                logger.exception(
                    f"Unexpected error storing session "
                    f"{record.provider_session_id!r} from {source.location}"
                )
                source.errors.append(
                    f"{record.provider_session_id}: {type(e).__name__}: {e}"
                )
        summary.sources.append(source)

    summary.version_after = store.sync.current_version()
    summary.duration_ms = int((time.time() - started) * 1000)
    logger.info(
        f"Harvest finished: {summary.sources_ok} ok, "
        f"{summary.sources_partial} partial, {summary.sources_failed} failed, "
        f"{summary.sessions_created} created, {summary.sessions_updated} updated, "
        f"{summary.sessions_unchanged} unchanged"
    )
    return summary
