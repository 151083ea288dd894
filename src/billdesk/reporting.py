"""Summaries of finished batches for the operator."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from billdesk.models import BatchResultEntry, BulkEditResult, BulkSyncResult
from billdesk.sync_errors import ParsedSyncError, parse_quickbooks_error


class BatchFlow(str, Enum):
    """Which pipeline produced the results."""

    PAYMENT = "payment"
    EDIT = "edit"


class BatchOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchSummary:
    """Terminal state of a batch."""

    flow: BatchFlow
    success_count: int
    failed_count: int
    entries: tuple[BatchResultEntry, ...]

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count

    @property
    def outcome(self) -> BatchOutcome:
        if self.failed_count == 0:
            return BatchOutcome.SUCCEEDED
        if self.success_count == 0:
            return BatchOutcome.FAILED
        return BatchOutcome.PARTIAL

    @property
    def clear_selection(self) -> bool:
        """Whether the caller should clear its selection now.

        A payment batch that recorded nothing keeps the selection so the
        operator can fix the amounts and resubmit. An edit is always safe to
        re-run, so its selection is always cleared.
        """
        if self.flow is BatchFlow.EDIT:
            return True
        return self.success_count > 0

    @property
    def failed_entries(self) -> list[BatchResultEntry]:
        return [entry for entry in self.entries if not entry.success]

    @property
    def sync_warnings(self) -> list[BatchResultEntry]:
        return [entry for entry in self.entries if entry.sync_warning]

    def headline(self) -> str:
        if self.flow is BatchFlow.PAYMENT:
            return (
                f"{self.success_count} of {self.total} payment(s) recorded successfully."
            )
        return edit_message(self.success_count, self.failed_count)

    def to_text(self) -> str:
        """Render the summary with one line per entry."""
        lines = [self.headline()]
        for entry in self.entries:
            status = "Recorded" if entry.success else "Failed"
            if self.flow is BatchFlow.EDIT:
                status = "Updated" if entry.success else "Failed"
            line = f"  [{status}] {entry.bill_number}"
            if entry.error:
                line += f": {entry.error}"
            if entry.sync_warning:
                line += f" (QuickBooks sync failed: {entry.sync_warning})"
            lines.append(line)
        return "\n".join(lines)


def summarize(
    results: Iterable[BatchResultEntry], flow: BatchFlow = BatchFlow.PAYMENT
) -> BatchSummary:
    """Count successes and failures, keeping entries in their original order."""
    entries = tuple(results)
    succeeded = sum(1 for entry in entries if entry.success)
    return BatchSummary(
        flow=flow,
        success_count=succeeded,
        failed_count=len(entries) - succeeded,
        entries=entries,
    )


def summarize_edit(result: BulkEditResult) -> BatchSummary:
    return summarize(result.entries, BatchFlow.EDIT)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def edit_message(success: int, failed: int, synced: bool = False) -> str:
    """Operator message after a bulk edit."""
    if failed == 0:
        suffix = " and synced to QuickBooks" if synced else ""
        return f"Updated {_plural(success, 'bill')}{suffix}"
    return f"{success} updated, {failed} failed"


def edit_result_message(result: BulkEditResult) -> str:
    return edit_message(result.success, result.failed, synced=result.synced)


def sync_message(result: BulkSyncResult) -> str:
    """Operator message after a bulk QuickBooks sync."""
    if result.synced > 0 and result.failed == 0:
        return f"Successfully synced {_plural(result.synced, 'bill')} to QuickBooks"
    if result.synced > 0:
        return f"Synced {_plural(result.synced, 'bill')}, {result.failed} failed"
    if result.failed > 0:
        return f"Failed to sync {_plural(result.failed, 'bill')}"
    return "No bills synced"


def sync_issue(entry: BatchResultEntry) -> ParsedSyncError | None:
    """Classified sync warning of an entry, for display on demand."""
    if not entry.sync_warning:
        return None
    return parse_quickbooks_error(entry.sync_warning)
