"""Error taxonomy of the harvest pipeline."""

from __future__ import annotations


class HarvestError(Exception):
    """Base class for failures raised while processing one work item."""

    def __init__(
        self,
        message: str,
        *,
        resource_id: str | None = None,
        locator: str | None = None,
    ) -> None:
        super().__init__(message)
        self.resource_id = resource_id
        self.locator = locator


class CreateFailed(HarvestError):
    """The worker resource could not be created."""


class LoadTimeout(HarvestError):
    """The worker resource never signalled readiness."""


class InjectFailed(HarvestError):
    """The injection payload could not be delivered."""


class CorrelationTimeout(HarvestError):
    """No completion message arrived before the deadline."""


class ExtractionError(HarvestError):
    """The completion message itself reports a scraping failure."""


class ListProviderError(HarvestError):
    """Work items could not be enumerated; nothing to aggregate."""


class DuplicateResultError(RuntimeError):
    """A second result was offered for a locator that already has one."""


__all__ = [
    "CorrelationTimeout",
    "CreateFailed",
    "DuplicateResultError",
    "ExtractionError",
    "HarvestError",
    "InjectFailed",
    "ListProviderError",
    "LoadTimeout",
]
