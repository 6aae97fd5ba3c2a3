from __future__ import annotations
import asyncio, logging, time
from datetime import date, datetime, timezone

from ..adapters.dump_files import Stability, dump_path_for, remove_dump, wait_until_stable
from ..config import Settings
from ..domain.decoding import load_dump_file
from ..domain.models import RunSummary
from ..ports.rpc import ChainClient
from ..ports.storage import ClaimStore, RunManifestSink
from .active_providers import load_active_providers, split_active
from .diffing import insert_diff, load_existing_keys

logger = logging.getLogger(__name__)

_SKIP_REASONS = {
    Stability.NOT_FOUND: "dump file not found",
    Stability.UNSTABLE:  "dump file not stable",
    Stability.CANCELLED: "shutdown requested",
}


class IngestionPipeline:
    """
    One ingestion run over today's dump:
    locate -> stability gate -> active providers -> decode -> intersect
    -> existing keys -> diff + batched insert-if-absent -> remove file.

    Holds the long-lived chain and store handles; they are created once by
    the caller and reused across runs.
    """

    def __init__(
        self,
        *,
        chain: ChainClient,
        store: ClaimStore,
        settings: Settings,
        manifest: RunManifestSink | None = None,
    ) -> None:
        self.chain = chain
        self.store = store
        self.settings = settings
        self.manifest = manifest

    async def run_once(self, day: date | None = None, stop: asyncio.Event | None = None) -> RunSummary:
        """Never raises for per-run errors; they end up in the returned summary."""
        summary = RunSummary(status="skipped", started_at=time.time())
        day = day or date.today()
        logger.info("run start day=%s", day.isoformat())
        try:
            await self._run(summary, day, stop)
        except Exception as e:
            summary.status = "failed"
            summary.reason = f"{type(e).__name__}: {e}"
            logger.error("run failed file=%s err=%s", summary.file, summary.reason)
        summary.finished_at = time.time()

        logger.info("run end status=%s reason=%s took=%.2fs inserted=%d rejected_rows=%d",
                    summary.status, summary.reason, summary.took, summary.inserted, summary.rejected_rows)
        if self.manifest is not None:
            try:
                await self.manifest.append(summary)
            except OSError as e:
                logger.warning("run manifest append failed err=%s", e)
        return summary

    async def _run(self, summary: RunSummary, day: date, stop: asyncio.Event | None) -> None:
        s = self.settings

        # 1) locate + wait for the producer to finish writing
        path = dump_path_for(day, s.dump_dir)
        summary.file = path
        stability = await wait_until_stable(
            path, interval=s.stable_check_interval_s, retries=s.stable_check_retries, stop=stop,
        )
        if stability is not Stability.STABLE:
            summary.reason = _SKIP_REASONS[stability]
            logger.info("skip run reason=%r file=%s", summary.reason, path)
            return
        logger.info("using stable dump file file=%s", path)

        # 2) providers with power right now
        active = await load_active_providers(self.chain)
        summary.active_providers = len(active)
        if not active:
            summary.reason = "no active providers"
            logger.warning("no active providers found; nothing to do")
            return

        # 3) decode the whole document, then keep active providers only
        run_ts = datetime.now(timezone.utc)
        decoded = await asyncio.to_thread(
            load_dump_file, path, skip_malformed=s.skip_malformed_records, now=run_ts,
        )
        claims, summary.inactive = split_active(decoded.claims, active)
        summary.records = decoded.records
        summary.decoded = len(decoded.claims)
        summary.decode_errors = decoded.decode_errors
        logger.info("claims loaded from file records=%d kept=%d inactive=%d decode_errors=%d",
                    decoded.records, len(claims), summary.inactive, decoded.decode_errors)

        # 4) what is already persisted
        existing = await load_existing_keys(self.store)
        summary.existing_keys = len(existing)
        logger.info("loaded db claim keys count=%d", len(existing))

        # 5) insert the set difference
        diff = await insert_diff(self.store, claims, existing, s.batch_size, now=run_ts)
        summary.prepared = diff.prepared
        summary.inserted = diff.inserted
        summary.batches = diff.batches
        summary.failed_batches = diff.failed_batches
        summary.rejected_rows = diff.rejected_rows

        # 6) consumed; a leftover file is harmless since re-ingestion is a no-op
        summary.file_removed = remove_dump(path)
        summary.status = "done"
