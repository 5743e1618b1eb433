"""anprtoll - Async billing reconciliation for ANPR toll networks."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("anprtoll")
except PackageNotFoundError:
    __version__ = "0+local"
from anprtoll.config import TollConfig
from anprtoll.engine import TollEngine
from anprtoll.exceptions import (
    TollCommitError,
    TollConfigError,
    TollConflictError,
    TollError,
    TollNotFoundError,
    TollStoreError,
    TollUpstreamError,
    TollValidationError,
)
from anprtoll.ledger import BillingLedger
from anprtoll.models import (
    GpsStatus,
    Operator,
    Owner,
    PlateRead,
    Registration,
    SightingRequest,
    SightingResult,
    TollZone,
    Transaction,
    Trip,
    TripStatus,
)
from anprtoll.registry import VehicleRegistry
from anprtoll.resolver import ExitDecision, ExitOutcome, ExitResolver, decide_exit
from anprtoll.scheduler import PeriodicTask
from anprtoll.store import DocumentStore, InMemoryDocumentStore
from anprtoll.sweep import ReconciliationSweep, SweepReport
from anprtoll.trips import SightingKind, SightingOutcome, TripStateMachine

__all__ = [
    "__version__",
    "BillingLedger",
    "DocumentStore",
    "ExitDecision",
    "ExitOutcome",
    "ExitResolver",
    "GpsStatus",
    "InMemoryDocumentStore",
    "Operator",
    "Owner",
    "PeriodicTask",
    "PlateRead",
    "ReconciliationSweep",
    "Registration",
    "SightingKind",
    "SightingOutcome",
    "SightingRequest",
    "SightingResult",
    "SweepReport",
    "TollCommitError",
    "TollConfig",
    "TollConfigError",
    "TollConflictError",
    "TollEngine",
    "TollError",
    "TollNotFoundError",
    "TollStoreError",
    "TollUpstreamError",
    "TollValidationError",
    "TollZone",
    "Transaction",
    "Trip",
    "TripStatus",
    "TripStateMachine",
    "VehicleRegistry",
    "decide_exit",
]
