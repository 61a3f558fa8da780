"""Progress events emitted by the import pipeline."""

import enum
from dataclasses import dataclass


class ImportPhase(str, enum.Enum):
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    READING_SHOWS = "reading_shows"
    IMPORTING_SHOWS = "importing_shows"
    IMPORTING_RECORDINGS = "importing_recordings"
    IMPORTING_COLLECTIONS = "importing_collections"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportProgress:
    """One event of the progress stream.

    ``total == 0`` means the phase has no known size (indeterminate).
    """

    phase: ImportPhase
    processed: int = 0
    total: int = 0
    message: str = ""

    @property
    def fraction(self) -> float | None:
        if self.total <= 0:
            return None
        return self.processed / self.total

    def __str__(self) -> str:
        if self.total > 0:
            return f"[{self.phase.value}] {self.processed}/{self.total} {self.message}"
        return f"[{self.phase.value}] {self.message}"
