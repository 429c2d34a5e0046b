"""
Reference cache for low-cardinality server metadata.

Each kind is fetched once on first access and kept for the lifetime of the
client; staleness is accepted in exchange for not re-listing statuses,
priorities and the like on every lookup. Concurrent first readers of a kind
wait on a per-kind lock and share the single fetch.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from .errors import RemoteError

logger = logging.getLogger(__name__)

FALLBACK_ISSUE_KEY_PATTERN = r"\b[A-Z][A-Z0-9_]+-[0-9]+\b"


class Dispatcher(Protocol):
    def call(self, name: str, *args: Any) -> Any: ...


@dataclass(frozen=True)
class ReferenceKind:
    operation: str
    id_field: str = "id"
    name_field: str = "name"


REFERENCE_KINDS: Mapping[str, ReferenceKind] = MappingProxyType(
    {
        "statuses": ReferenceKind("getStatuses"),
        "priorities": ReferenceKind("getPriorities"),
        "issue_types": ReferenceKind("getIssueTypes"),
        "subtask_types": ReferenceKind("getSubTaskIssueTypes"),
        "resolutions": ReferenceKind("getResolutions"),
        "projects": ReferenceKind("getProjectsNoSchemes", id_field="key"),
        "filters": ReferenceKind("getFavouriteFilters"),
    }
)


def build_table(records: Iterable[Mapping[str, Any]], id_field: str, name_field: str) -> dict[str, str]:
    table: dict[str, str] = {}
    for record in records:
        ident = record.get(id_field)
        if ident is None:
            continue
        name = record.get(name_field)
        table[str(ident)] = "" if name is None else str(name)
    return table


def user_display_name(record: Mapping[str, Any] | None, username: str) -> str:
    if not record:
        return username
    # REST answers with displayName, the SOAP service with fullname.
    return str(record.get("displayName") or record.get("fullname") or username)


class ReferenceCache:
    """Lazily populated id -> name tables, one per reference kind."""

    def __init__(self, dispatcher: Dispatcher):
        self._dispatcher = dispatcher
        self._tables: dict[str, Mapping[str, str]] = {}
        self._user_names: dict[str, str] = {}
        self._issue_key_regexp: re.Pattern[str] | None = None
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._fetch_count = 0

    def _count_fetch(self) -> None:
        with self._locks_guard:
            self._fetch_count += 1

    def _fetch_user(self, username: str) -> Mapping[str, Any] | None:
        try:
            return self._dispatcher.call("getUser", username)
        except RemoteError as exc:
            # REST answers 404 where the SOAP service returns nothing.
            if exc.status == 404:
                return None
            raise

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, kind: str) -> Mapping[str, str]:
        ref_kind = REFERENCE_KINDS.get(kind)
        if ref_kind is None:
            raise KeyError(f"unknown reference kind '{kind}'")

        table = self._tables.get(kind)
        if table is not None:
            return table

        with self._lock_for(kind):
            table = self._tables.get(kind)
            if table is None:
                records = self._dispatcher.call(ref_kind.operation)
                self._count_fetch()
                table = MappingProxyType(build_table(records, ref_kind.id_field, ref_kind.name_field))
                self._tables[kind] = table
                logger.info("Cached %d %s", len(table), kind)
        return table

    def name_for(self, kind: str, ident: Any) -> str | None:
        if ident is None:
            return None
        return self.get(kind).get(str(ident))

    def id_for(self, kind: str, name: str) -> str | None:
        wanted = name.casefold()
        for ident, candidate in self.get(kind).items():
            if candidate.casefold() == wanted:
                return ident
        return None

    def user_fullname(self, username: str) -> str:
        cached = self._user_names.get(username)
        if cached is not None:
            return cached
        with self._lock_for(f"user:{username}"):
            cached = self._user_names.get(username)
            if cached is None:
                record = self._fetch_user(username)
                self._count_fetch()
                cached = self._user_names[username] = user_display_name(record, username)
        return cached

    def issue_key_regexp(self) -> re.Pattern[str]:
        """Pattern matching issue keys of the projects visible to the user."""
        if self._issue_key_regexp is not None:
            return self._issue_key_regexp
        with self._lock_for("issue_key_regexp"):
            if self._issue_key_regexp is None:
                keys = sorted(self.get("projects"), key=len, reverse=True)
                if keys:
                    alternatives = "|".join(re.escape(key) for key in keys)
                    pattern = rf"\b(?:{alternatives})-[0-9]+\b"
                else:
                    pattern = FALLBACK_ISSUE_KEY_PATTERN
                self._issue_key_regexp = re.compile(pattern)
        return self._issue_key_regexp

    def clear(self) -> None:
        with self._locks_guard:
            self._tables = {}
            self._user_names = {}
            self._issue_key_regexp = None

    def get_health(self) -> dict[str, Any]:
        with self._locks_guard:
            return {
                "loadedKinds": sorted(self._tables),
                "cachedUsers": len(self._user_names),
                "fetchCount": self._fetch_count,
            }
