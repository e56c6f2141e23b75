"""
Scan orchestration.

Drives one discovery pass over an AddressRange:

    neighbor lookup -> host probe -> vendor lookup -> classification
        -> DeviceRecord -> ResultSink (replace by IP) -> durable snapshot

State machine: PENDING -> RUNNING -> COMPLETED | CANCELLED, or
PENDING -> FAILED when the range expression does not parse. Cancellation
is cooperative and takes effect at the next address boundary; a host
already being probed is finished and recorded.

All scan state lives in a ScanContext owned by the orchestrator. Consumers
either read immutable snapshots (results(), status()) or subscribe to
incremental ScanUpdate events.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional

from ._types import (
    BUILTIN_PROFILES,
    NOT_AVAILABLE,
    UNKNOWN_VENDOR,
    DeviceRecord,
    OSFamily,
    PortProfile,
    ReachStatus,
    ScanJob,
    ScanState,
    now_utc,
)
from .address_range import InvalidRangeFormat, parse_range
from .classifier import DeviceClassifier, detect_printer_hint
from .config import ScannerConfig
from .discovery import Enricher, HostProbe, NeighborTable, NullEnricher, WinRMEnricher
from .result_store import ResultStore
from .vendor_db import VendorDatabase

logger = logging.getLogger(__name__)


class ScanAlreadyRunning(RuntimeError):
    """Raised when a scan is started while another is running."""


class ResultSink:
    """
    Ordered collection of DeviceRecords keyed by IP address.

    Records are only added or replaced during a run. Reads return an
    immutable tuple, never the live structure.
    """

    def __init__(self, records: Iterable[DeviceRecord] = ()):
        self._records: dict[str, DeviceRecord] = {}
        self.load(records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DeviceRecord]:
        return iter(self.snapshot())

    def __contains__(self, ip_address: object) -> bool:
        return ip_address in self._records

    def upsert(self, record: DeviceRecord) -> bool:
        """Add or replace a record. Returns True if it was new."""
        is_new = record.ip_address not in self._records
        self._records[record.ip_address] = record
        return is_new

    def get(self, ip_address: str) -> Optional[DeviceRecord]:
        return self._records.get(ip_address)

    def snapshot(self) -> tuple[DeviceRecord, ...]:
        return tuple(self._records.values())

    def clear(self) -> None:
        self._records = {}

    def load(self, records: Iterable[DeviceRecord]) -> None:
        """Replace contents with previously stored records."""
        self._records = {r.ip_address: r for r in records}


@dataclass(frozen=True)
class ScanUpdate:
    """Incremental event published to subscribers."""
    scan_id: Optional[str]
    state: Optional[ScanState]
    progress: int
    total: int
    record: Optional[DeviceRecord] = None
    final: bool = False


@dataclass
class ScanContext:
    """Everything one orchestrator knows about the current scan."""
    sink: ResultSink = field(default_factory=ResultSink)
    job: Optional[ScanJob] = None
    task: Optional[asyncio.Task] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    subscribers: set[asyncio.Queue] = field(default_factory=set)

    def begin(self, job: ScanJob) -> None:
        """Reset for a new scan. Clears the previous results."""
        self.job = job
        self.sink.clear()
        self.cancel_event = asyncio.Event()

    def publish(self, update: ScanUpdate) -> None:
        for queue in list(self.subscribers):
            queue.put_nowait(update)

    def status_update(self, final: bool = False) -> ScanUpdate:
        job = self.job
        if job is None:
            return ScanUpdate(scan_id=None, state=None, progress=0, total=0, final=final)
        return ScanUpdate(
            scan_id=job.scan_id,
            state=job.state,
            progress=job.progress,
            total=job.total,
            final=final,
        )


class ScanSubscription:
    """
    Async iterator over ScanUpdates for the current scan.

    Registers on creation, so no update published after subscribe()
    returns is missed. Ends after the update carrying the terminal state.
    """

    def __init__(self, context: ScanContext):
        self._context = context
        self._queue: asyncio.Queue = asyncio.Queue()
        self._done = False
        context.subscribers.add(self._queue)

        job = context.job
        if job is None or job.state.is_terminal:
            self._queue.put_nowait(context.status_update(final=True))

    def __aiter__(self) -> "ScanSubscription":
        return self

    async def __anext__(self) -> ScanUpdate:
        if self._done:
            raise StopAsyncIteration
        update = await self._queue.get()
        if update.final:
            self._done = True
            self.close()
        return update

    def close(self) -> None:
        self._context.subscribers.discard(self._queue)


class ScanOrchestrator:
    """
    Runs discovery passes and owns their results.

    One scan at a time. The address loop runs as a single asyncio task;
    with max_concurrent_hosts > 1 up to that many hosts are probed at
    once, but recording and snapshotting a finished host never suspends,
    so every stored snapshot is whole.
    """

    def __init__(
        self,
        store: ResultStore,
        vendor_db: Optional[VendorDatabase] = None,
        probe: Optional[HostProbe] = None,
        neighbor_table: Optional[NeighborTable] = None,
        enricher: Optional[Enricher] = None,
        classifier: Optional[DeviceClassifier] = None,
        profiles: Optional[Mapping[str, PortProfile]] = None,
        default_profile: str = "Default",
        max_concurrent_hosts: int = 1,
    ):
        self.store = store
        self.vendor_db = vendor_db or VendorDatabase()
        self.probe = probe or HostProbe()
        self.neighbor_table = neighbor_table or NeighborTable()
        self.enricher = enricher or NullEnricher()
        self.classifier = classifier or DeviceClassifier()
        self.profiles = dict(profiles or BUILTIN_PROFILES)
        self.default_profile = default_profile
        self.max_concurrent_hosts = max(1, max_concurrent_hosts)

        self.context = ScanContext()
        # Previous results are for viewing only; scanning restarts from scratch.
        try:
            self.context.sink.load(self.store.load_snapshot())
        except sqlite3.Error as e:
            logger.warning(f"Could not load previous scan results: {e}")
        if len(self.context.sink):
            logger.info(f"Loaded {len(self.context.sink)} records from previous scan")

    @classmethod
    def from_config(cls, config: ScannerConfig) -> "ScanOrchestrator":
        """Wire up an orchestrator from configuration."""
        vendor_db = VendorDatabase(config.oui_path)
        vendor_db.load()

        enricher: Enricher = NullEnricher()
        if config.enable_enrichment:
            credentials = config.winrm_credentials()
            if credentials:
                enricher = WinRMEnricher(credentials, timeout=config.enrichment_timeout_seconds)
            else:
                logger.warning("Enrichment enabled without credentials, skipping")

        return cls(
            store=ResultStore(config.db_path),
            vendor_db=vendor_db,
            probe=HostProbe(
                ping_timeout=config.ping_timeout_seconds,
                connect_timeout=config.connect_timeout_seconds,
                dns_timeout=config.dns_timeout_seconds,
            ),
            enricher=enricher,
            profiles=config.profiles,
            default_profile=config.port_profile,
            max_concurrent_hosts=config.max_concurrent_hosts,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def job(self) -> Optional[ScanJob]:
        return self.context.job

    @property
    def running(self) -> bool:
        job = self.context.job
        return job is not None and job.state == ScanState.RUNNING

    def get_profile(self, name: Optional[str] = None) -> PortProfile:
        name = name or self.default_profile
        try:
            return self.profiles[name]
        except KeyError:
            raise KeyError(f"Unknown port profile: {name}") from None

    def start(self, expression: str, profile_name: Optional[str] = None) -> ScanJob:
        """
        Validate the range and launch a scan in the background.

        Must be called from a running event loop.

        Raises:
            ScanAlreadyRunning: a scan is in progress
            KeyError: unknown port profile
            InvalidRangeFormat: the range does not parse (job is FAILED)
        """
        if self.running:
            raise ScanAlreadyRunning(f"Scan {self.context.job.scan_id} is still running")

        profile = self.get_profile(profile_name)
        job = ScanJob(range_expression=expression, profile=profile)

        try:
            job.addresses = parse_range(expression)
        except InvalidRangeFormat as e:
            job.state = ScanState.FAILED
            job.error_message = str(e)
            job.completed_at = now_utc()
            self.context.job = job
            self._record_history(job, created=True)
            logger.error(f"Scan rejected: {e}")
            raise

        self.context.begin(job)
        try:
            self.store.clear_snapshot()
        except sqlite3.Error as e:
            logger.error(f"Failed to clear result snapshot: {e}")
        job.state = ScanState.RUNNING
        self._record_history(job, created=True)
        logger.info(
            f"Starting scan {job.scan_id}: {expression} "
            f"({job.total} addresses, profile={profile.name})"
        )

        self.context.task = asyncio.create_task(self._run(job))
        return job

    def cancel(self) -> bool:
        """Request cancellation. Returns False if nothing is running."""
        if not self.running:
            return False
        logger.info(f"Cancellation requested for scan {self.context.job.scan_id}")
        self.context.cancel_event.set()
        return True

    async def wait(self) -> Optional[ScanJob]:
        """Wait for the current scan task to finish."""
        task = self.context.task
        if task is not None:
            await asyncio.shield(task)
        return self.context.job

    async def run(self, expression: str, profile_name: Optional[str] = None) -> ScanJob:
        """Start a scan and wait for it."""
        job = self.start(expression, profile_name)
        await self.wait()
        return job

    def subscribe(self) -> ScanSubscription:
        return ScanSubscription(self.context)

    def results(self) -> tuple[DeviceRecord, ...]:
        return self.context.sink.snapshot()

    def status(self) -> dict:
        job = self.context.job
        if job is None:
            return {"state": None, "progress": 0, "total": 0, "results": len(self.context.sink)}
        status = job.to_dict()
        status["results"] = len(self.context.sink)
        return status

    # -------------------------------------------------------------------------
    # Scan loop
    # -------------------------------------------------------------------------

    async def _run(self, job: ScanJob) -> None:
        context = self.context
        in_flight: set[asyncio.Task] = set()

        try:
            await self.neighbor_table.snapshot()

            slots = asyncio.Semaphore(self.max_concurrent_hosts)
            for ip_address in job.addresses:
                if context.cancel_event.is_set():
                    break
                await slots.acquire()
                if context.cancel_event.is_set():
                    slots.release()
                    break
                task = asyncio.create_task(self._scan_host(job, ip_address, slots))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)

            if in_flight:
                await asyncio.gather(*in_flight)

            if context.cancel_event.is_set() and job.progress < job.total:
                job.state = ScanState.CANCELLED
            else:
                job.state = ScanState.COMPLETED

        except Exception as e:
            logger.exception(f"Scan {job.scan_id} failed")
            for task in in_flight:
                task.cancel()
            job.state = ScanState.FAILED
            job.error_message = str(e)

        job.completed_at = now_utc()
        self._record_history(job)
        logger.info(
            f"Scan {job.scan_id} {job.state.value}: "
            f"{job.progress}/{job.total} addresses processed"
        )
        context.publish(context.status_update(final=True))

    async def _scan_host(self, job: ScanJob, ip_address: str, slots: asyncio.Semaphore) -> None:
        try:
            try:
                record = await self.build_record(ip_address, job.profile)
            except Exception as e:
                logger.debug(f"Probe of {ip_address} failed: {e}")
                record = DeviceRecord(ip_address=ip_address)
            self._commit(job, record)
        finally:
            slots.release()

    async def build_record(self, ip_address: str, profile: PortProfile) -> DeviceRecord:
        """Probe and classify one address."""
        mac_address = self.neighbor_table.lookup(ip_address)
        result = await self.probe.probe(ip_address, profile)
        vendor = (
            self.vendor_db.lookup(mac_address)
            if mac_address != NOT_AVAILABLE
            else UNKNOWN_VENDOR
        )

        if not result.reachable:
            classification = self.classifier.classify(
                vendor, (), detect_printer_hint(None, vendor), OSFamily.UNKNOWN
            )
            return DeviceRecord(
                ip_address=ip_address,
                status=ReachStatus.UNREACHABLE,
                mac_address=mac_address,
                vendor=vendor,
                category=classification.category,
            )

        hostname = await self.probe.resolve_hostname(ip_address)
        hardware = await self.enricher.enrich(ip_address)
        classification = self.classifier.classify(
            vendor,
            result.open_ports,
            detect_printer_hint(hostname, vendor),
            result.os_hint,
        )
        logger.debug(
            f"{ip_address}: {classification.category.value} "
            f"(rule={classification.rule}, ports={sorted(result.open_ports)})"
        )
        return DeviceRecord(
            ip_address=ip_address,
            status=ReachStatus.OK,
            hostname=hostname,
            mac_address=mac_address,
            vendor=vendor,
            category=classification.category,
            open_ports=tuple(sorted(result.open_ports)),
            os_hint=result.os_hint,
            hardware=hardware,
        )

    def _commit(self, job: ScanJob, record: DeviceRecord) -> None:
        """Record one finished host. Must not suspend."""
        context = self.context
        context.sink.upsert(record)
        job.progress += 1
        try:
            self.store.save_snapshot(context.sink.snapshot())
        except sqlite3.Error as e:
            logger.error(f"Failed to write result snapshot: {e}")

        context.publish(ScanUpdate(
            scan_id=job.scan_id,
            state=job.state,
            progress=job.progress,
            total=job.total,
            record=record,
        ))

    def _record_history(self, job: ScanJob, created: bool = False) -> None:
        try:
            if created:
                self.store.create_scan_record(job)
            else:
                self.store.complete_scan(job)
        except sqlite3.Error as e:
            logger.error(f"Failed to record scan history: {e}")
