"""Aggregator Sync Orchestrator - pull accounts and transactions into the ledger exactly once"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from fintrack_engine.config import settings
from fintrack_engine.domain.exceptions import AggregatorTimeout, PersistenceWriteFailed
from fintrack_engine.domain.models import (
    ConnectionStatus,
    ExternalAccount,
    ExternalItem,
    ExternalTransaction,
    SyncMode,
    SyncOutcome,
    SyncResult,
    SyncRunReport,
)
from fintrack_engine.domain.normalization import (
    PENDING_ITEM_STATUSES,
    USER_ACTION_ITEM_STATUSES,
    build_transaction_title,
    is_final,
    normalize_amount,
    transaction_type_for,
)
from fintrack_engine.infrastructure.clients.aggregator import AggregatorClient
from fintrack_engine.infrastructure.database.ledger import LedgerWriter
from fintrack_engine.infrastructure.database.repositories import ConnectionRepository
from fintrack_engine.infrastructure.database.session import unit_of_work
from fintrack_engine.infrastructure.observability.logging import log_sync_outcome
from fintrack_engine.infrastructure.observability.metrics import record_sync
from fintrack_engine.services.account_mapper import AccountMapper
from fintrack_engine.utils.date_utils import as_utc, to_date, trailing_window, utcnow


class AggregatorSyncOrchestrator:
    """Top-level entry point for bank sync"""

    def __init__(
        self,
        db: Session,
        client: AggregatorClient | None = None,
        mapper: AccountMapper | None = None,
        ledger: LedgerWriter | None = None,
        poll_interval: float | None = None,
        max_wait: float | None = None,
        window_days: int | None = None,
    ):
        self.db = db
        self.client = client or AggregatorClient()
        self.ledger = ledger or LedgerWriter(db)
        self.mapper = mapper or AccountMapper(db, self.ledger)
        self.connections = ConnectionRepository(db)
        self.poll_interval = poll_interval if poll_interval is not None else settings.refresh_poll_interval_seconds
        self.max_wait = max_wait if max_wait is not None else settings.refresh_max_wait_seconds
        self.window_days = window_days or settings.sync_window_days

    async def wait_for_refresh(self, item_id: str) -> ExternalItem:
        """
        Trigger an item refresh and poll until it leaves the pending statuses.

        Polls every ``poll_interval`` seconds for at most ``max_wait`` seconds.
        Cancelling the awaiting task stops the loop at the next await.

        Raises:
            AggregatorTimeout: Still pending at the deadline (carries the last item seen)
            AggregatorRequestFailed: Refresh or status call failed
        """
        item = await self.client.update_item(item_id)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_wait

        while item.status in PENDING_ITEM_STATUSES:
            if loop.time() >= deadline:
                raise AggregatorTimeout(
                    f"Item {item_id} still {item.status} after {self.max_wait}s",
                    item=item,
                )
            await asyncio.sleep(self.poll_interval)
            item = await self.client.get_item_status(item_id)

        return item

    async def sync_item(self, user_id: str, item_id: str) -> SyncResult:
        """
        Sync one aggregator item into the ledger.

        Flow:
        1. Refresh the item (bounded poll; a timeout is soft and the sync continues)
        2. Fetch the item's accounts and each account's trailing-window transactions
        3. Map accounts, drop non-final transactions, normalize signed amounts
        4. Claim unseen external ids on the connection watermark, upsert only those
        5. Advance last_processed_at and mark the connection active

        Steps 3-5 run in one database transaction. On failure the connection is
        marked as errored and the exception propagates.
        """
        start_time = time.time()
        result = SyncResult(item_id=item_id)

        try:
            item = await self._refresh(item_id, result)
            external_accounts = await self.client.list_accounts(item_id)

            date_from, date_to = trailing_window(self.window_days)
            transactions_by_account: Dict[str, List[ExternalTransaction]] = {}
            for account in external_accounts:
                transactions_by_account[account.id] = await self.client.list_transactions(account.id, date_from, date_to)

            with unit_of_work(self.db, "sync_item"):
                self._apply(user_id, item_id, item, external_accounts, transactions_by_account, result)

        except Exception as e:
            self._record_failure(user_id, item_id, e)
            record_sync("error")
            log_sync_outcome(user_id, item_id, "error", 0, 0, (time.time() - start_time) * 1000, error=str(e))
            raise

        outcome = "timeout" if result.refresh_timed_out else "success"
        record_sync(outcome, result.transactions_applied, result.duplicates_avoided)
        log_sync_outcome(
            user_id,
            item_id,
            outcome,
            result.transactions_applied,
            result.duplicates_avoided,
            (time.time() - start_time) * 1000,
        )
        return result

    async def sync_connections(self, user_id: str, mode: SyncMode = SyncMode.SILENT) -> SyncRunReport:
        """
        Sync every linked item of a user, one at a time.

        A failing item never aborts the run. Silent mode only logs failures;
        interactive mode also reports the error message per item.
        """
        report = SyncRunReport(user_id=user_id, mode=mode)
        item_ids = [c.external_item_id for c in self.connections.list_for_user(user_id)]

        for item_id in item_ids:
            try:
                result = await self.sync_item(user_id, item_id)
                report.outcomes.append(SyncOutcome(item_id=item_id, ok=True, result=result))
            except Exception as e:
                if mode is SyncMode.SILENT:
                    logging.warning(f"Background sync failed for item {item_id}: {e}", extra={"user_id": user_id})
                    report.outcomes.append(SyncOutcome(item_id=item_id, ok=False))
                else:
                    logging.error(f"Sync failed for item {item_id}: {e}", extra={"user_id": user_id})
                    report.outcomes.append(SyncOutcome(item_id=item_id, ok=False, error=str(e)))

        return report

    async def _refresh(self, item_id: str, result: SyncResult) -> ExternalItem:
        try:
            item = await self.wait_for_refresh(item_id)
        except AggregatorTimeout as e:
            logging.warning(str(e), extra={"item_id": item_id, "step": "refresh_timeout"})
            result.refresh_timed_out = True
            item = e.item

        result.item_status = item.status
        result.requires_user_action = item.status in USER_ACTION_ITEM_STATUSES
        return item

    def _apply(
        self,
        user_id: str,
        item_id: str,
        item: ExternalItem,
        external_accounts: List[ExternalAccount],
        transactions_by_account: Dict[str, List[ExternalTransaction]],
        result: SyncResult,
    ) -> None:
        connection = self.connections.ensure(user_id, item_id)
        institution = item.institution_name or self._first_account_name(external_accounts) or connection.institution_name

        mapping = self.mapper.resolve(user_id, connection, external_accounts, institution)
        result.accounts_mapped = len(mapping)

        latest: Optional[datetime] = as_utc(connection.last_processed_at)
        candidates = []
        seen = set()

        for account in external_accounts:
            account_id = mapping.get(account.id)
            if account_id is None:
                continue

            for txn in transactions_by_account.get(account.id, []):
                if not txn.id or txn.id in seen:
                    continue
                if txn.date is not None:
                    observed = as_utc(txn.date)
                    latest = observed if latest is None else max(latest, observed)
                if not is_final(txn):
                    continue
                amount = normalize_amount(txn.amount, txn.type)
                if amount is None or txn.date is None:
                    continue

                seen.add(txn.id)
                candidates.append(
                    {
                        "id": txn.id,
                        "user_id": user_id,
                        "title": build_transaction_title(txn),
                        "amount": amount,
                        "date": to_date(txn.date),
                        "type": transaction_type_for(amount).value,
                        "account_id": account_id,
                        "category_id": None,
                        "source": "aggregator",
                    }
                )

        claimed = set(self.ledger.claim_external_ids(connection.id, [c["id"] for c in candidates]))
        records = [c for c in candidates if c["id"] in claimed]
        self.ledger.upsert_transactions(records)

        result.transactions_applied = len(records)
        result.duplicates_avoided = len(candidates) - len(records)

        connection.last_processed_at = latest
        connection.last_synced_at = utcnow()
        connection.status = ConnectionStatus.ACTIVE.value
        connection.last_error = None
        if institution:
            connection.institution_name = institution

        result.connection_id = str(connection.id)
        result.last_processed_at = latest

    @staticmethod
    def _first_account_name(external_accounts: List[ExternalAccount]) -> Optional[str]:
        for account in external_accounts:
            name = (account.name or "").strip()
            if name:
                return name
        return None

    def _record_failure(self, user_id: str, item_id: str, error: Exception) -> None:
        """Mark the item's connection as errored in its own transaction"""
        try:
            with unit_of_work(self.db, "record_sync_failure"):
                connection = self.connections.ensure(user_id, item_id)
                connection.status = ConnectionStatus.ERROR.value
                connection.last_error = str(error)[:500]
        except PersistenceWriteFailed as e:
            logging.error(f"Could not record sync failure for item {item_id}: {e}", extra={"user_id": user_id})
