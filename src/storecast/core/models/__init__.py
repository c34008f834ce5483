"""Dataclass models for every storecast table.

Field names match SQL column names exactly so ``Model(**row)`` works on a
row mapping.  Timestamps stay ISO-8601 strings, as stored.

Tags:
    storecast, models, dataclasses, schema-mapping
"""

from storecast.core.models.publishing import (
    Campaign,
    DistributionTarget,
    Post,
    PostTarget,
    ScheduledTrigger,
    Store,
)

__all__ = [
    "Campaign",
    "DistributionTarget",
    "Post",
    "PostTarget",
    "ScheduledTrigger",
    "Store",
]
