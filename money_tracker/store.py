import logging
import time
import uuid

from .errors import ValidationError
from .models import DEFAULT_CATEGORY_COLOR, Category, default_categories


logger = logging.getLogger(__name__)


def clean_category_name(value):
    name = (value or "").strip()
    if not name:
        raise ValidationError("Category name cannot be empty")
    return name


class LedgerStore:
    """In-memory transactions and categories owned by one login session.

    Transactions only ever grow by ``append`` and change by
    ``reassign_category``. Operations that name an unknown id do nothing.
    """

    def __init__(self, categories=None):
        self._transactions = []
        self._categories = list(default_categories() if categories is None else categories)
        self.version = 0

    @property
    def transactions(self):
        return list(self._transactions)

    @property
    def categories(self):
        return list(self._categories)

    def _touch(self):
        self.version += 1

    def append(self, transactions):
        added = list(transactions)
        self._transactions.extend(added)
        if added:
            self._touch()
        return len(added)

    def get_transaction(self, transaction_id):
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def reassign_category(self, transaction_id, category_id):
        transaction = self.get_transaction(transaction_id)
        if transaction is None:
            logger.debug("Ignoring category change for unknown transaction %s", transaction_id)
            return False
        transaction.category_id = category_id
        self._touch()
        return True

    def get_category(self, category_id):
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def category_lookup(self):
        return {category.id: category for category in self._categories}

    def add_category(self, name, color=None):
        cleaned = clean_category_name(name)
        # Ids still referenced by transactions of a deleted category are never reused.
        used_ids = {category.id for category in self._categories}
        used_ids.update(tx.category_id for tx in self._transactions if tx.category_id is not None)
        new_id = max(used_ids, default=0) + 1
        category = Category(id=new_id, name=cleaned, color=color or DEFAULT_CATEGORY_COLOR)
        self._categories.append(category)
        self._touch()
        return category

    def update_category(self, category_id, name, color=None):
        cleaned = clean_category_name(name)
        category = self.get_category(category_id)
        if category is None:
            return None
        category.name = cleaned
        if color:
            category.color = color
        self._touch()
        return category

    def delete_category(self, category_id):
        category = self.get_category(category_id)
        if category is None:
            return False
        self._categories.remove(category)
        self._touch()
        return True


class SessionLedgers:
    """Registry of ledgers keyed by an opaque per-login token.

    Ledgers not touched for ``idle_seconds`` are dropped on the next access to
    the registry. ``idle_seconds=None`` keeps them until ``discard``.
    """

    def __init__(self, idle_seconds=None, clock=time.monotonic):
        self.idle_seconds = idle_seconds
        self.clock = clock
        self._ledgers = {}
        self._last_seen = {}

    def __len__(self):
        return len(self._ledgers)

    def new_key(self):
        return uuid.uuid4().hex

    def evict_idle(self):
        if self.idle_seconds is None:
            return 0
        cutoff = self.clock() - self.idle_seconds
        expired = [key for key, seen in self._last_seen.items() if seen < cutoff]
        for key in expired:
            self.discard(key)
        if expired:
            logger.info("Evicted %s idle ledgers", len(expired))
        return len(expired)

    def get(self, key):
        self.evict_idle()
        ledger = self._ledgers.get(key)
        if ledger is not None:
            self._last_seen[key] = self.clock()
        return ledger

    def get_or_create(self, key):
        ledger = self.get(key)
        if ledger is None:
            ledger = LedgerStore()
            self._ledgers[key] = ledger
            self._last_seen[key] = self.clock()
        return ledger

    def discard(self, key):
        self._last_seen.pop(key, None)
        return self._ledgers.pop(key, None) is not None
