from .assignments import SqlAssignmentRegistry
from .catalog import SqlTestCatalog
from .locks import DatabaseConcurrencyGuard, RedisConcurrencyGuard
from .sessions import SqlSessionStore

__all__ = [
    "DatabaseConcurrencyGuard",
    "RedisConcurrencyGuard",
    "SqlAssignmentRegistry",
    "SqlSessionStore",
    "SqlTestCatalog",
]
