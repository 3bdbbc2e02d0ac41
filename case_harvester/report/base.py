"""Report assembly interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from ..engine.models import Timeline


class ReportAssembler(ABC):
    """Consumes the merged, sorted timeline of one harvest."""

    @abstractmethod
    def assemble(self, timeline: Timeline) -> Path | None:
        """Render ``timeline``; return where it was written, if anywhere."""


__all__ = ["ReportAssembler"]
