"""Account Mapper - resolve aggregator accounts to internal accounts"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from fintrack_engine.config import settings
from fintrack_engine.domain.models import ExternalAccount
from fintrack_engine.domain.normalization import build_account_name, map_account_type, normalize_name
from fintrack_engine.infrastructure.database.ledger import LedgerWriter
from fintrack_engine.infrastructure.database.models import Account, Connection
from fintrack_engine.infrastructure.database.repositories import AccountRepository, ConnectionRepository


class AccountMapper:
    """
    Find or create the internal account for each aggregator account.

    Match order:
    1. Explicit link stored for this connection
    2. Same normalized display name
    3. Institution heuristic, only among accounts with no connection yet

    Steps 2 and 3 only accept a single unambiguous candidate, never an account
    already bound to another connection or already matched in this run; anything
    else falls through to creating a new account.
    """

    def __init__(self, db: Session, ledger: LedgerWriter | None = None, balance_tolerance: float | None = None):
        self.db = db
        self.ledger = ledger or LedgerWriter(db)
        self.accounts = AccountRepository(db)
        self.connections = ConnectionRepository(db)
        tolerance = balance_tolerance if balance_tolerance is not None else settings.balance_tolerance
        self.balance_tolerance = Decimal(str(tolerance))

    def resolve(
        self,
        user_id: str,
        connection: Connection,
        external_accounts: List[ExternalAccount],
        institution_name: Optional[str] = None,
    ) -> Dict[str, uuid.UUID]:
        """Map every external account id to an internal account id (persisting the links)"""
        stored_links = self.connections.account_mapping(connection.id)
        known = self.accounts.list_for_user(user_id)
        assigned: Set[uuid.UUID] = set()
        mapping: Dict[str, uuid.UUID] = {}

        for external in external_accounts:
            if not external.id:
                continue
            institution = institution_name or external.name

            account = self._match(external, connection, stored_links, known, assigned, institution)
            if account is None:
                account = self._create(user_id, external, connection, institution)
                known.append(account)
            else:
                self._reconcile(account, external, connection, institution)

            assigned.add(account.id)
            mapping[external.id] = account.id
            self.connections.save_link(connection.id, external.id, account.id)

        return mapping

    def _match(
        self,
        external: ExternalAccount,
        connection: Connection,
        stored_links: Dict[str, uuid.UUID],
        known: List[Account],
        assigned: Set[uuid.UUID],
        institution: Optional[str],
    ) -> Optional[Account]:
        linked_id = stored_links.get(external.id)
        if linked_id is not None and linked_id not in assigned:
            for account in known:
                if account.id == linked_id:
                    return account

        # Accounts linked to other external accounts of this connection are off limits
        reserved = {account_id for ext_id, account_id in stored_links.items() if ext_id != external.id}
        available = [
            account
            for account in known
            if account.id not in assigned
            and account.id not in reserved
            and account.connection_id in (None, connection.id)
        ]

        display_name = normalize_name(build_account_name(external))
        by_name = [account for account in available if normalize_name(account.name) == display_name]
        if len(by_name) == 1:
            return by_name[0]
        if len(by_name) > 1:
            logging.warning(
                "Ambiguous account name match, creating a new account",
                extra={"external_account_id": external.id, "candidates": len(by_name)},
            )
            return None

        wanted_institution = normalize_name(institution)
        if not wanted_institution:
            return None
        wanted_type = map_account_type(external).value
        by_institution = [
            account
            for account in available
            if account.connection_id is None
            and account.type == wanted_type
            and normalize_name(account.institution) == wanted_institution
        ]
        if len(by_institution) == 1:
            return by_institution[0]
        return None

    def _reconcile(self, account: Account, external: ExternalAccount, connection: Connection, institution: Optional[str]) -> None:
        """Bring balance/institution in line with the aggregator and backfill the connection"""
        reported = external.balance
        current = Decimal(account.balance) if account.balance is not None else None
        if reported is not None and (current is None or abs(current - reported) > self.balance_tolerance):
            logging.info(
                "Detected balance change",
                extra={
                    "account_id": str(account.id),
                    "step": "balance_reconciled",
                    "reported_balance": str(reported),
                    "previous_balance": str(current),
                },
            )
            self.ledger.set_account_balance(account, reported, institution)

        if account.connection_id is None:
            self.ledger.link_account_to_connection(account, connection.id)

    def _create(self, user_id: str, external: ExternalAccount, connection: Connection, institution: Optional[str]) -> Account:
        account = self.accounts.create(
            user_id,
            name=build_account_name(external),
            type=map_account_type(external).value,
            balance=external.balance if external.balance is not None else Decimal("0"),
            institution=institution,
            connection_id=connection.id,
        )
        logging.info(
            "Created account for aggregator account",
            extra={"account_id": str(account.id), "external_account_id": external.id, "step": "account_created"},
        )
        return account
