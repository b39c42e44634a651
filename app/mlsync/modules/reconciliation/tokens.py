from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass

from app.mlsync.modules.reconciliation.errors import LedgerError
from app.mlsync.modules.reconciliation.ledger import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    name: str
    access_token: str


class TokenStore(Mapping[str, Account]):
    """Account name -> access token, loaded once per run. Read-only."""

    def __init__(self, accounts: Iterable[Account] = ()) -> None:
        self._accounts = {a.name.upper(): a for a in accounts}

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[str]]) -> "TokenStore":
        """Token sheet rows: header first, then [account_name, access_token, ...]."""
        accounts = []
        for row in rows[1:]:
            name = (row[0] if len(row) > 0 else "").strip()
            token = (row[1] if len(row) > 1 else "").strip()
            if not name or not token:
                continue
            accounts.append(Account(name=name.upper(), access_token=token))
        return cls(accounts)

    def __getitem__(self, name: str) -> Account:
        return self._accounts[(name or "").strip().upper()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def token_for(self, name: str | None) -> str | None:
        account = self.get(name or "")
        return account.access_token if account else None


async def load_token_store(ledger: LedgerStore, token_range: str) -> TokenStore:
    try:
        rows = await ledger.get(token_range)
    except LedgerError as e:
        # Without tokens every row fails as no_token; the pass itself still runs.
        logger.error("Loading tokens from %s failed: %s", token_range, e)
        return TokenStore()
    store = TokenStore.from_rows(rows)
    logger.info("Loaded tokens for %d account(s): %s", len(store), ", ".join(sorted(store)))
    return store
