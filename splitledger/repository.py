"""Group storage.

The ledger engine never touches storage; the HTTP host loads a ``Group``
snapshot, runs engine functions on it and saves the result back through one
of these repositories.
"""
from __future__ import annotations

import json
import logging
import random
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Callable, Dict, List, Optional

from .db import TRANSIENT_ERRORS
from .errors import GroupNotFound, RepositoryError
from .models import Group

logger = logging.getLogger(__name__)


class GroupRepository(ABC):
    @abstractmethod
    def load(self, group_id: str) -> Group:
        """Return the stored group or raise ``GroupNotFound``."""

    @abstractmethod
    def save(self, group: Group) -> None:
        pass

    @abstractmethod
    def list_ids(self) -> List[str]:
        pass

    def load_all(self) -> List[Group]:
        return [self.load(group_id) for group_id in self.list_ids()]


class InMemoryGroupRepository(GroupRepository):
    def __init__(self) -> None:
        self._groups: Dict[str, Group] = {}
        self._lock = RLock()

    def load(self, group_id: str) -> Group:
        with self._lock:
            try:
                return self._groups[group_id]
            except KeyError:
                raise GroupNotFound(f"no group {group_id!r}") from None

    def save(self, group: Group) -> None:
        with self._lock:
            self._groups[group.id] = group

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._groups)


class MySQLGroupRepository(GroupRepository):
    """One row per group holding the group's JSON document."""

    def __init__(
        self,
        database,
        retries: int = 4,
        backoff: float = 0.35,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.database = database
        self.retries = max(1, retries)
        self.backoff = backoff
        self._sleep = sleep

    def _with_retry(self, operation: Callable[[], object], description: str):
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries):
            try:
                return operation()
            except TRANSIENT_ERRORS as exc:
                last_exc = exc
                logger.warning(
                    "%s failed (attempt %d/%d): %s", description, attempt + 1, self.retries, exc
                )
                if attempt + 1 < self.retries:
                    self._sleep(self.backoff * (2**attempt) + random.uniform(0.0, 0.2))
        logger.error("%s gave up after %d attempts", description, self.retries)
        raise RepositoryError(f"{description} failed: {last_exc}") from last_exc

    def load(self, group_id: str) -> Group:
        row = self._with_retry(
            lambda: self.database.fetch_one(
                "SELECT payload FROM ledger_groups WHERE id=%s", (group_id,)
            ),
            f"load group {group_id}",
        )
        if not row:
            raise GroupNotFound(f"no group {group_id!r}")
        return Group.from_dict(json.loads(row["payload"]))

    def save(self, group: Group) -> None:
        payload = json.dumps(group.to_dict())
        self._with_retry(
            lambda: self.database.execute(
                """
                INSERT INTO ledger_groups (id, payload) VALUES (%s, %s)
                ON DUPLICATE KEY UPDATE payload = VALUES(payload)
                """,
                (group.id, payload),
            ),
            f"save group {group.id}",
        )

    def list_ids(self) -> List[str]:
        rows = self._with_retry(
            lambda: self.database.fetch_all("SELECT id FROM ledger_groups ORDER BY id"),
            "list groups",
        )
        return [row["id"] for row in rows]
