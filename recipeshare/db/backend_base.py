"""Abstract base classes for database backends."""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple, Type


class Transaction(ABC):
    """Statements executed inside one backend transaction."""

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return result rows (or a rowcount entry)."""
        pass

    @abstractmethod
    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        """Execute an INSERT and return the new row's ID."""
        pass


class DatabaseBackend(ABC):
    """Abstract database backend interface.

    Queries are written with ``?`` placeholders; backends that need a
    different style convert them.
    """

    schema_file: str = ""

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query in its own transaction and return results as list of dicts."""
        pass

    @abstractmethod
    def execute_returning_id(self, query: str, params: tuple = ()) -> int:
        """Execute an INSERT and return the new row's ID."""
        pass

    @abstractmethod
    def execute_many(self, query: str, params_list: List[tuple]) -> int:
        """Execute a query with multiple parameter sets."""
        pass

    @abstractmethod
    def execute_script(self, script: str) -> None:
        """Run a multi-statement script such as the schema."""
        pass

    @abstractmethod
    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Transaction]:
        """Open a transaction; commit on normal exit, roll back on error.

        Read-only transactions see one consistent snapshot across all of
        their statements.
        """
        pass

    @abstractmethod
    def close(self):
        """Close the database connection(s)."""
        pass

    @property
    @abstractmethod
    def placeholder(self) -> str:
        """Return the parameter placeholder ('?' for SQLite, '%s' for PostgreSQL)."""
        pass

    @property
    @abstractmethod
    def integrity_errors(self) -> Tuple[Type[BaseException], ...]:
        """Driver exceptions raised when a constraint is violated."""
        pass
