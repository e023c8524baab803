"""Positions: structure bookkeeping over legs, fills and links.

Public API:
    append_trades_to_structure(db, structure_id, rows, client_scope) -> AppendResult
    save_unprocessed_trades(db, rows, client_scope, created_by) -> InsertResult
    save_transaction_logs(db, entries, client_scope, created_by) -> InsertResult
    backfill_leg_expiries(db, rows, client_scope) -> BackfillResult
    archive_structure(db, structure_id, archived_by, client_scope) -> Result
    sync_linked_structures(db, source_id, linked_ids, closed_at, client_scope) -> SyncResult
    fetch_saved_structures(db, client_scope, include_archived) -> FetchStructuresResult
    fetch_program_playbooks(db, program_ids) -> FetchPlaybooksResult
    build_structure_summary_lines(structure) -> Optional[SummaryLines]
    build_structure_chip_summary(structure) -> Optional[str]
"""

from .append_trades import append_trades_to_structure
from .archive import archive_structure
from .backfill import backfill_leg_expiries
from .identifiers import derive_synthetic_delivery_id, extract_identifier, sanitize_identifier
from .linked import get_linked_structure_ids, merge_closed_at, sync_linked_structures
from .normalize import NormalizedTrade, normalize_trade_row, normalize_trade_rows
from .playbooks import fetch_program_playbooks, fetch_program_resources
from .results import ErrorKind, Result
from .structures import StructureView, fetch_saved_structures
from .summary import SummaryLines, build_structure_chip_summary, build_structure_summary_lines
from .transaction_logs import TransactionLogEntry, save_transaction_logs
from .unprocessed import save_unprocessed_trades

__all__ = [
    "append_trades_to_structure",
    "archive_structure",
    "backfill_leg_expiries",
    "derive_synthetic_delivery_id",
    "extract_identifier",
    "sanitize_identifier",
    "get_linked_structure_ids",
    "merge_closed_at",
    "sync_linked_structures",
    "NormalizedTrade",
    "normalize_trade_row",
    "normalize_trade_rows",
    "fetch_program_playbooks",
    "fetch_program_resources",
    "ErrorKind",
    "Result",
    "StructureView",
    "fetch_saved_structures",
    "SummaryLines",
    "build_structure_chip_summary",
    "build_structure_summary_lines",
    "TransactionLogEntry",
    "save_transaction_logs",
    "save_unprocessed_trades",
]
