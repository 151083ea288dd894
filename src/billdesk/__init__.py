"""billdesk - bulk payment, bulk edit and QuickBooks sync for vendor bills."""

__version__ = "0.1.0"

from billdesk.batch import BuiltBatch, PaymentBatchBuilder
from billdesk.bulk_edit import BulkEditOrchestrator
from billdesk.cache import QueryCache
from billdesk.clients import LedgerAPIClient, LedgerAPIError
from billdesk.config import configure_logging, get_settings
from billdesk.errors import (
    BatchIntegrityError,
    ItemOperationError,
    SyncWarning,
    ValidationError,
)
from billdesk.events import EventPublisher
from billdesk.executor import BulkPaymentExecutor
from billdesk.models import (
    BatchResultEntry,
    Bill,
    BillStatus,
    BulkEditProgress,
    BulkEditUpdates,
    PaymentDefaults,
    PaymentInstruction,
    PaymentMethod,
)
from billdesk.reporting import BatchFlow, BatchSummary, summarize
from billdesk.session import BillSelection, PaymentSession
from billdesk.sync_errors import parse_quickbooks_error
from billdesk.validation import validate

__all__ = [
    # Version
    "__version__",
    # Domain
    "Bill",
    "BillStatus",
    "PaymentMethod",
    "PaymentDefaults",
    "PaymentInstruction",
    "BatchResultEntry",
    "BulkEditUpdates",
    "BulkEditProgress",
    # Pipelines
    "validate",
    "PaymentBatchBuilder",
    "BuiltBatch",
    "BulkPaymentExecutor",
    "BulkEditOrchestrator",
    "summarize",
    "BatchFlow",
    "BatchSummary",
    "parse_quickbooks_error",
    # Session
    "BillSelection",
    "PaymentSession",
    # Infrastructure
    "LedgerAPIClient",
    "LedgerAPIError",
    "QueryCache",
    "EventPublisher",
    # Errors
    "ValidationError",
    "ItemOperationError",
    "SyncWarning",
    "BatchIntegrityError",
    # Config
    "get_settings",
    "configure_logging",
]
