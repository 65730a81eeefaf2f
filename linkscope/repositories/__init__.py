"""Repository package initialization."""

from .history_repository import (
    HistoryRecord,
    HistoryStats,
    IHistoryRepository,
    InMemoryHistoryRepository,
    create_history_repository,
    generate_scan_id
)

__all__ = [
    "HistoryRecord",
    "HistoryStats",
    "IHistoryRepository",
    "InMemoryHistoryRepository",
    "create_history_repository",
    "generate_scan_id"
]
