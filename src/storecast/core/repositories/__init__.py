"""Repositories for storecast tables.

Every repository takes a :class:`~storecast.core.protocols.Connection` and
an optional :class:`~storecast.core.dialect.Dialect`.  Tenant-owned tables
extend ``ScopedRepository`` and take a ``TenantScope`` as the first
argument of every method.

Architecture::

    ┌────────────────────────────────────────────────────────────────┐
    │  publishing/orchestrator.py,  cli/publish.py                   │
    └────────────────────────────┬───────────────────────────────────┘
                                 │ uses
                                 ▼
    ┌────────────────────────────────────────────────────────────────┐
    │  storecast.core.repositories  (this package)                   │
    │                                                                │
    │  stores.py        StoreRepository (tenant-agnostic)            │
    │  campaigns.py     CampaignRepository                           │
    │  posts.py         PostRepository (fan-out on create)           │
    │  targets.py       DistributionTargetRepository                 │
    │  post_targets.py  PostTargetRepository (due scan, transitions) │
    │  triggers.py      TriggerRepository (cron descriptors)         │
    └────────────────────────────────────────────────────────────────┘

Tags:
    repository, sql, tenancy, storecast, dialect-aware
"""

from storecast.core.repositories._base import Repository, ScopedRepository
from storecast.core.repositories.campaigns import (
    CampaignCreate,
    CampaignRepository,
    CampaignUpdate,
)
from storecast.core.repositories.post_targets import PostTargetRepository
from storecast.core.repositories.posts import PostCreate, PostRepository, PostUpdate
from storecast.core.repositories.stores import StoreRepository
from storecast.core.repositories.targets import DistributionTargetRepository, TargetConnect
from storecast.core.repositories.triggers import (
    TriggerCreate,
    TriggerRepository,
    validate_cron,
)

__all__ = [
    "CampaignCreate",
    "CampaignRepository",
    "CampaignUpdate",
    "DistributionTargetRepository",
    "PostCreate",
    "PostRepository",
    "PostTargetRepository",
    "PostUpdate",
    "Repository",
    "ScopedRepository",
    "StoreRepository",
    "TargetConnect",
    "TriggerCreate",
    "TriggerRepository",
    "validate_cron",
]
