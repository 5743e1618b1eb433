"""High-level async engine for the ANPR toll network."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from anprtoll.config import TollConfig
from anprtoll.exceptions import TollError, TollUpstreamError
from anprtoll.ingestion.cooldown import CooldownFilter
from anprtoll.ingestion.normalize import normalize_plate
from anprtoll.ingestion.recognition import PlateReader, PlateRecognizerClient
from anprtoll.ledger import BillingLedger
from anprtoll.models.sighting import PlateRead, SightingRequest, SightingResult
from anprtoll.registry import VehicleRegistry
from anprtoll.resolver import ExitResolver
from anprtoll.store.base import DocumentStore
from anprtoll.sweep import ReconciliationSweep, SweepReport
from anprtoll.trips import SightingKind, SightingOutcome, TripStateMachine

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _result_for(outcome: SightingOutcome) -> SightingResult:
    if outcome.kind is SightingKind.DUPLICATE:
        return SightingResult(success=True, message="Duplicate ignored.", plate=outcome.plate, is_duplicate=True)
    if outcome.kind is SightingKind.EXTENDED:
        return SightingResult(
            success=True,
            message="Session updated. No charge yet.",
            plate=outcome.plate,
            is_duplicate=False,
        )
    if outcome.kind is SightingKind.BYPASSED and outcome.registration is not None:
        return SightingResult(
            success=True,
            message=f"GPS {outcome.registration.gps_status.value}: Bypass applied.",
            plate=outcome.plate,
            is_duplicate=False,
            is_registered=True,
        )
    return SightingResult(
        success=True,
        message="New session started. Charge pending exit.",
        plate=outcome.plate,
        is_duplicate=False,
        is_registered=outcome.is_registered,
    )


class TollEngine:
    """Async engine turning camera sightings into toll charges.

    Usage::

        async with TollEngine(config, store=store) as engine:
            result = await engine.process_sighting(payload)

    Parameters
    ----------
    config : TollConfig
        Engine configuration; ``TollConfig.from_env()`` when omitted.
    store : DocumentStore
        Storage shared by every component.
    reader : PlateReader, optional
        Plate recognition backend.  Defaults to a
        :class:`PlateRecognizerClient` on the engine's HTTP session.
    http_session : aiohttp.ClientSession, optional
        Externally owned session; otherwise one is created on enter and
        closed on exit.
    clock : callable, optional
        Source of "now" for cooldown and idle-trip decisions.
    """

    def __init__(
        self,
        config: TollConfig | None = None,
        *,
        store: DocumentStore,
        reader: PlateReader | None = None,
        http_session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = (config or TollConfig.from_env()).validate()
        self._store = store
        self._reader = reader
        self._external_session = http_session is not None
        self._http_session = http_session
        self._clock = clock

        self._registry = VehicleRegistry(store, timeout=self._config.registry_timeout)
        self._cooldown = CooldownFilter(store, window=self._config.cooldown_window)
        self._trips = TripStateMachine(
            store,
            self._registry,
            self._cooldown,
            default_flat_rate=self._config.default_flat_rate,
            clock=clock,
        )
        self._ledger = BillingLedger(store)
        self._resolver = ExitResolver(store, self._registry, self._ledger)
        self._sweep = ReconciliationSweep(
            store,
            self._resolver,
            exit_threshold=self._config.exit_threshold,
            interval=self._config.sweep_interval,
            concurrency=self._config.sweep_concurrency,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TollEngine:
        if self._reader is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._reader = PlateRecognizerClient(self._config, self._http_session)
        if self._config.sweep_enabled:
            self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def start(self) -> None:
        """Start the periodic reconciliation sweep."""
        self._sweep.start()
        _logger.info("Reconciliation sweep running every %.0fs", self._config.sweep_interval)

    async def close(self) -> None:
        """Stop the sweep (waiting for a running pass) and release HTTP resources."""
        await self._sweep.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> TollConfig:
        return self._config

    @property
    def registry(self) -> VehicleRegistry:
        return self._registry

    @property
    def trips(self) -> TripStateMachine:
        return self._trips

    @property
    def resolver(self) -> ExitResolver:
        return self._resolver

    @property
    def sweep(self) -> ReconciliationSweep:
        return self._sweep

    # ------------------------------------------------------------------
    # Ingest path
    # ------------------------------------------------------------------

    def _require_reader(self) -> PlateReader:
        if self._reader is None:
            raise TollError("Engine not initialized. Use 'async with TollEngine(...) as engine:'")
        return self._reader

    async def _recognize(self, image: bytes) -> list[PlateRead]:
        reader = self._require_reader()
        try:
            async with asyncio.timeout(self._config.recognition_timeout):
                return await reader.read_plates(image)
        except TimeoutError as exc:
            raise TollUpstreamError(
                f"Plate recognition timed out after {self._config.recognition_timeout:.1f}s",
                service="recognition",
            ) from exc

    async def process_sighting(self, payload: SightingRequest | dict[str, Any]) -> SightingResult:
        """Handle one camera sighting end to end.

        Raises
        ------
        TollValidationError
            The payload lacks an operator or a decodable image.
        TollUpstreamError
            Plate recognition failed or timed out; nothing was written.
        TollNotFoundError
            The operator's toll zone does not exist.
        """
        request = SightingRequest.parse(payload)
        image = request.image_bytes()
        zone_id = request.operator.toll_zone_id

        reads = await self._recognize(image)
        plate = normalize_plate(reads[0].plate) if reads else ""
        if not plate:
            _logger.debug("No plate detected in frame from zone %s", zone_id)
            return SightingResult(success=False, message="No plate detected.")

        try:
            outcome = await self._trips.record_sighting(plate, zone_id, request.operator.toll_zone_name)
        except TollError as exc:
            _logger.error("Sighting of %s in zone %s failed: %s", plate, zone_id, exc)
            raise
        return _result_for(outcome)

    async def sweep_once(self) -> SweepReport:
        """Run one reconciliation pass immediately."""
        return await self._sweep.run_once()
