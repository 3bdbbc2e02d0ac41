"""Engine components: resources -> correlation -> pool -> aggregation."""

from .aggregator import ResultAggregator
from .correlator import PendingCorrelation, ResponseCorrelator
from .errors import (
    CorrelationTimeout,
    CreateFailed,
    DuplicateResultError,
    ExtractionError,
    HarvestError,
    InjectFailed,
    ListProviderError,
    LoadTimeout,
)
from .listing import BrowserListProvider, ListProvider, StaticListProvider
from .models import (
    AggregatedResultMap,
    InjectionPayload,
    RawMessage,
    ResourceHandle,
    ResultRecord,
    Timeline,
    WorkItem,
)
from .normalizer import error_record, normalize, parse_date_hint
from .pool import BoundedWorkerPool
from .resources import WorkerResourceManager

__all__ = [
    "AggregatedResultMap",
    "BoundedWorkerPool",
    "BrowserListProvider",
    "CorrelationTimeout",
    "CreateFailed",
    "DuplicateResultError",
    "ExtractionError",
    "HarvestError",
    "InjectFailed",
    "InjectionPayload",
    "ListProvider",
    "ListProviderError",
    "LoadTimeout",
    "PendingCorrelation",
    "RawMessage",
    "ResourceHandle",
    "ResponseCorrelator",
    "ResultAggregator",
    "ResultRecord",
    "StaticListProvider",
    "Timeline",
    "WorkItem",
    "WorkerResourceManager",
    "error_record",
    "normalize",
    "parse_date_hint",
]
