import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from config import get_settings
from errors import PersistenceError
from models import (
    Account,
    Budget,
    Category,
    Pool,
    Transaction,
    UserPreferences,
    default_accounts,
    default_categories,
)
from recurrence import local_today
from state import AppState, refresh_derived

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

ACCOUNTS_FILE = "accounts.json"
POOLS_FILE = "pools.json"
TRANSACTIONS_FILE = "transactions.json"
CATEGORIES_FILE = "categories.json"
BUDGETS_FILE = "budgets.json"
PREFERENCES_FILE = "preferences.json"

_accounts_adapter = TypeAdapter(list[Account])
_pools_adapter = TypeAdapter(dict[str, list[Pool]])
_transactions_adapter = TypeAdapter(list[Transaction])
_categories_adapter = TypeAdapter(list[Category])
_budgets_adapter = TypeAdapter(list[Budget])


class JsonStore:
    """One pretty-printed JSON file per collection, wrapped in a versioned envelope."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, name: str) -> Path:
        return self.root / name

    def _quarantine(self, name: str) -> None:
        path = self._path(name)
        target = path.with_name(path.name + ".corrupt")
        try:
            os.replace(path, target)
        except OSError as exc:
            logger.warning(f"store_quarantine_failed: file={name} error={exc}")
            return
        logger.warning(f"store_quarantined: file={name} moved_to={target.name}")

    def _read(self, name: str) -> Optional[Any]:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"store_load_failed: file={name} error={exc}")
            self._quarantine(name)
            return None
        if not isinstance(payload, dict) or "items" not in payload:
            logger.warning(f"store_load_failed: file={name} error=missing envelope")
            self._quarantine(name)
            return None
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            logger.warning(
                f"store_load_failed: file={name} error=unsupported schema_version {version}"
            )
            self._quarantine(name)
            return None
        return payload["items"]

    def _write(self, name: str, items: Any) -> None:
        path = self._path(name)
        envelope = {"schema_version": SCHEMA_VERSION, "items": items}
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.root, prefix=f".{name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    json.dump(envelope, tmp, indent=2, ensure_ascii=False)
                    tmp.write("\n")
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write {path}") from exc

    def _load(self, name: str, adapter: TypeAdapter) -> Optional[Any]:
        items = self._read(name)
        if items is None:
            return None
        try:
            return adapter.validate_python(items)
        except SchemaError as exc:
            logger.warning(
                f"store_load_failed: file={name} errors={exc.error_count()}"
            )
            self._quarantine(name)
            return None

    def load_accounts(self) -> Optional[list[Account]]:
        accounts = self._load(ACCOUNTS_FILE, _accounts_adapter)
        if accounts is None:
            return None
        pools = self.load_pools() or {}
        return [
            account.model_copy(update={"pools": pools.get(str(account.id), [])})
            for account in accounts
        ]

    def load_pools(self) -> Optional[dict[str, list[Pool]]]:
        return self._load(POOLS_FILE, _pools_adapter)

    def load_transactions(self) -> Optional[list[Transaction]]:
        return self._load(TRANSACTIONS_FILE, _transactions_adapter)

    def load_categories(self) -> Optional[list[Category]]:
        return self._load(CATEGORIES_FILE, _categories_adapter)

    def load_budgets(self) -> Optional[list[Budget]]:
        return self._load(BUDGETS_FILE, _budgets_adapter)

    def load_preferences(self) -> Optional[UserPreferences]:
        items = self._read(PREFERENCES_FILE)
        if items is None:
            return None
        try:
            return UserPreferences.model_validate(items)
        except SchemaError as exc:
            logger.warning(
                f"store_load_failed: file={PREFERENCES_FILE} errors={exc.error_count()}"
            )
            self._quarantine(PREFERENCES_FILE)
            return None

    def save_accounts(self, accounts: list[Account]) -> None:
        self._write(
            ACCOUNTS_FILE,
            [a.model_dump(mode="json", exclude={"pools"}) for a in accounts],
        )
        self.save_pools(accounts)

    def save_pools(self, accounts: list[Account]) -> None:
        self._write(
            POOLS_FILE,
            {
                str(a.id): [p.model_dump(mode="json") for p in a.pools]
                for a in accounts
            },
        )

    def save_transactions(self, transactions: list[Transaction]) -> None:
        self._write(
            TRANSACTIONS_FILE, [t.model_dump(mode="json") for t in transactions]
        )

    def save_categories(self, categories: list[Category]) -> None:
        self._write(CATEGORIES_FILE, [c.model_dump(mode="json") for c in categories])

    def save_budgets(self, budgets: list[Budget]) -> None:
        self._write(BUDGETS_FILE, [b.model_dump(mode="json") for b in budgets])

    def save_preferences(self, preferences: UserPreferences) -> None:
        self._write(PREFERENCES_FILE, preferences.model_dump(mode="json"))

    def load_state(self) -> AppState:
        accounts = self.load_accounts()
        categories = self.load_categories()
        state = AppState(
            accounts=accounts if accounts is not None else default_accounts(),
            categories=categories if categories is not None else default_categories(),
            transactions=self.load_transactions() or [],
            budgets=self.load_budgets() or [],
            preferences=self.load_preferences() or UserPreferences(),
        )
        return refresh_derived(state, local_today())

    def save_state(self, state: AppState) -> None:
        self.save_accounts(state.accounts)
        self.save_transactions(state.transactions)
        self.save_categories(state.categories)
        self.save_budgets(state.budgets)
        self.save_preferences(state.preferences)


@lru_cache(maxsize=1)
def get_store() -> JsonStore:
    return JsonStore(get_settings().data_dir)


_lock = threading.RLock()
_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    with _lock:
        if _state is None:
            _state = get_store().load_state()
        return _state


def reset_state() -> None:
    global _state
    with _lock:
        _state = None


def persist(state: AppState) -> bool:
    try:
        get_store().save_state(state)
    except PersistenceError:
        # in-memory state stays authoritative for the session
        logger.exception("store_save_failed")
        return False
    return True


@contextmanager
def state_scope() -> Iterator[AppState]:
    with _lock:
        state = get_state()
        yield state
        persist(state)
