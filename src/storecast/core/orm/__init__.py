"""SQLAlchemy 2.0 table declarations for storecast.

The declarative metadata is the single schema definition; DDL is compiled
from it by :mod:`storecast.core.schema`.
"""

from storecast.core.orm.base import StorecastBase
from storecast.core.orm.tables import (
    CampaignTable,
    DistributionTargetTable,
    PostTable,
    PostTargetTable,
    PublisherLeaseTable,
    ScheduledTriggerTable,
    StoreTable,
)

__all__ = [
    "CampaignTable",
    "DistributionTargetTable",
    "PostTable",
    "PostTargetTable",
    "PublisherLeaseTable",
    "ScheduledTriggerTable",
    "StoreTable",
    "StorecastBase",
]
