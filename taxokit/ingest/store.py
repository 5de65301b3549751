"""
Store contract and import result types.

Importers never talk to a database directly. They receive a Store and use
three primitives on it: select by key, upsert on a natural key, and delete
by id. SupabaseStore implements it against Postgres; tests use an
in-memory store.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ImportResult:
    """
    Outcome of an import (or of applying a suggestion).

    success_count counts rows the store accepted. errors holds one
    human-readable message per problem, each carrying the row number or
    natural key plus level/chunk context where relevant.
    """
    success_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: "ImportResult") -> "ImportResult":
        self.success_count += other.success_count
        self.errors.extend(other.errors)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"successCount": self.success_count, "errors": list(self.errors)}


class Store:
    """
    Abstract store interface.

    Implement this interface with your actual persistence layer. Rows are
    plain dictionaries keyed by column name; ids are opaque to callers.
    Implementations raise on failure; callers decide how far a failure
    propagates.
    """

    def select(
        self,
        table: str,
        key: Optional[str] = None,
        values: Optional[List[Any]] = None,
        columns: Optional[List[str]] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows from a table.

        Args:
            table: Table name
            key: Column to filter on (None fetches every row)
            values: Accepted values for key (an empty list matches nothing)
            columns: Columns to return (None returns all)

        Returns:
            Matching rows
        """
        raise NotImplementedError

    def upsert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        on_conflict: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Insert rows, updating existing ones that collide on a natural key.

        Args:
            table: Table name
            rows: Rows to write
            on_conflict: Comma-separated conflict columns, e.g. "code" or
                "subject_id,predicate,object_id". None performs a plain insert.

        Returns:
            The written rows as stored, including their ids
        """
        raise NotImplementedError

    def delete(self, table: str, ids: List[Any]) -> None:
        """
        Delete rows by id.

        Args:
            table: Table name
            ids: Row ids to delete
        """
        raise NotImplementedError
