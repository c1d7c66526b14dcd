# Merged timeline over a record's event streams, and session navigation
from .merger import (
    TimelineMerger,
    TimelineQuery,
    TimelinePage,
)
from .sessions import (
    RecordSummary,
    SessionNavigator,
    SessionView,
)

__all__ = [
    "TimelineMerger",
    "TimelineQuery",
    "TimelinePage",
    "RecordSummary",
    "SessionNavigator",
    "SessionView",
]
