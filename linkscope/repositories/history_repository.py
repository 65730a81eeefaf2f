"""
Scan history repository.

The analyzer never persists anything; callers store results here keyed by a
generated scan id and may attach an annotation later without re-analysing.
"""

import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from linkscope.config.logging import get_logger
from linkscope.config.settings import Settings, get_settings
from linkscope.services.annotator import Annotation
from linkscope.services.redirect_interfaces import AnalysisResult, RiskLevel

logger = get_logger(__name__)

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_SUFFIX_LENGTH = 9


def generate_scan_id(
    clock: Callable[[], float] = time.time,
    rng: Optional[random.Random] = None
) -> str:
    """Scan id of the form "<epoch-ms>-<9 base36 chars>"."""
    rng = rng or random
    suffix = "".join(rng.choice(ID_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"{int(clock() * 1000)}-{suffix}"


@dataclass
class HistoryRecord:
    """One stored scan"""
    id: str
    timestamp: float
    url: str
    analysis_result: AnalysisResult
    annotation: Optional[Annotation] = None
    favorite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "url": self.url,
            "analysis_result": self.analysis_result.to_dict(),
            "annotation": self.annotation.to_dict() if self.annotation else None,
            "favorite": self.favorite,
        }


@dataclass
class HistoryStats:
    total_scans: int
    risk_distribution: Dict[str, int] = field(default_factory=dict)
    favorite_scans: int = 0


class IHistoryRepository(ABC):
    """Interface for scan history stores"""

    @abstractmethod
    async def save_scan(self, result: AnalysisResult, annotation: Optional[Annotation] = None) -> str:
        """Store a result and return its new scan id."""

    @abstractmethod
    async def get_history(self) -> List[HistoryRecord]:
        """All stored scans, newest first."""

    @abstractmethod
    async def get_scan(self, scan_id: str) -> Optional[HistoryRecord]:
        pass

    @abstractmethod
    async def attach_annotation(self, scan_id: str, annotation: Annotation) -> bool:
        pass

    @abstractmethod
    async def toggle_favorite(self, scan_id: str) -> Optional[bool]:
        pass

    @abstractmethod
    async def delete_scan(self, scan_id: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def get_stats(self) -> HistoryStats:
        history = await self.get_history()
        distribution = {level.value: 0 for level in RiskLevel}
        for record in history:
            distribution[record.analysis_result.risk_level.value] += 1
        return HistoryStats(
            total_scans=len(history),
            risk_distribution=distribution,
            favorite_scans=sum(1 for record in history if record.favorite)
        )


class InMemoryHistoryRepository(IHistoryRepository):
    """Process-local history store capped at max_items, newest first."""

    def __init__(
        self,
        max_items: int = 50,
        clock: Callable[[], float] = time.time,
        id_factory: Optional[Callable[[], str]] = None
    ):
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.max_items = max_items
        self._clock = clock
        self._id_factory = id_factory or (lambda: generate_scan_id(self._clock))
        self._records: List[HistoryRecord] = []

    async def save_scan(self, result: AnalysisResult, annotation: Optional[Annotation] = None) -> str:
        scan_id = self._id_factory()
        self._records.insert(0, HistoryRecord(
            id=scan_id,
            timestamp=self._clock(),
            url=result.requested_url,
            analysis_result=result,
            annotation=annotation
        ))
        if len(self._records) > self.max_items:
            dropped = len(self._records) - self.max_items
            del self._records[self.max_items:]
            logger.debug(f"History capped at {self.max_items}; dropped {dropped} oldest scans")
        return scan_id

    async def get_history(self) -> List[HistoryRecord]:
        return list(self._records)

    async def get_scan(self, scan_id: str) -> Optional[HistoryRecord]:
        for record in self._records:
            if record.id == scan_id:
                return record
        return None

    async def attach_annotation(self, scan_id: str, annotation: Annotation) -> bool:
        record = await self.get_scan(scan_id)
        if record is None:
            return False
        record.annotation = annotation
        return True

    async def toggle_favorite(self, scan_id: str) -> Optional[bool]:
        record = await self.get_scan(scan_id)
        if record is None:
            return None
        record.favorite = not record.favorite
        return record.favorite

    async def delete_scan(self, scan_id: str) -> bool:
        before = len(self._records)
        self._records = [record for record in self._records if record.id != scan_id]
        return len(self._records) < before

    async def clear(self) -> None:
        self._records.clear()


# Factory function
def create_history_repository(settings: Optional[Settings] = None) -> InMemoryHistoryRepository:
    """Factory function to create a history store capped at HISTORY_MAX_ITEMS."""
    settings = settings or get_settings()
    return InMemoryHistoryRepository(max_items=settings.HISTORY_MAX_ITEMS)
