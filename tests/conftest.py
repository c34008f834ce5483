"""Shared fixtures: in-memory database, two stores, repositories, fake publishers."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from storecast.core.connection import SqliteConnection
from storecast.core.repositories import (
    CampaignCreate,
    CampaignRepository,
    DistributionTargetRepository,
    PostCreate,
    PostRepository,
    PostTargetRepository,
    StoreRepository,
    TargetConnect,
    TriggerRepository,
)
from storecast.core.schema import apply_schema
from storecast.core.settings import clear_settings_cache
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import utc_now
from storecast.publishing.protocol import PublishResult


class FakePublisher:
    """In-process publisher with a scripted result, error or delay."""

    def __init__(
        self,
        platform: str = "facebook",
        result: PublishResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.platform = platform
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def publish(self, caption, image_url, token, external_account_id):
        self.calls.append(
            {
                "caption": caption,
                "image_url": image_url,
                "token": token,
                "external_account_id": external_account_id,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return PublishResult.success(f"{self.platform}-{len(self.calls)}")


# ── Fixtures ─────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture()
def conn():
    connection = SqliteConnection(":memory:")
    apply_schema(connection)
    yield connection
    connection.close()


@pytest.fixture()
def stores(conn):
    return StoreRepository(conn)


@pytest.fixture()
def store_a(stores):
    return stores.create("Store A")


@pytest.fixture()
def store_b(stores):
    return stores.create("Store B")


@pytest.fixture()
def scope_a(store_a):
    return TenantScope.for_tenant(store_a.id)


@pytest.fixture()
def scope_b(store_b):
    return TenantScope.for_tenant(store_b.id)


@pytest.fixture()
def campaigns(conn):
    return CampaignRepository(conn)


@pytest.fixture()
def destinations(conn):
    return DistributionTargetRepository(conn)


@pytest.fixture()
def posts(conn):
    return PostRepository(conn)


@pytest.fixture()
def post_targets(conn):
    return PostTargetRepository(conn)


@pytest.fixture()
def triggers(conn):
    return TriggerRepository(conn)


@pytest.fixture()
def fake_publisher():
    """Factory for :class:`FakePublisher` instances."""
    return FakePublisher


@pytest.fixture()
def seed(campaigns, destinations, posts):
    """Factory: connect targets, create a campaign and a post due in the past.

    Returns ``(campaign, post, [distribution targets])``.
    """

    def _seed(
        scope: TenantScope,
        *,
        platforms: tuple[str, ...] = ("facebook",),
        caption: str = "Spring sale starts today",
        image_url: str | None = None,
        due_in: timedelta = timedelta(minutes=-5),
        campaign: CampaignCreate | None = None,
    ):
        connected = [
            destinations.connect(
                scope,
                TargetConnect(
                    platform=platform,
                    external_account_id=f"{platform}-page-{i}",
                    access_token=f"token-{platform}-{i}",
                    display_name=f"{platform.title()} Page {i}",
                ),
            )
            for i, platform in enumerate(platforms)
        ]
        created = campaigns.create(scope, campaign or CampaignCreate(name="Spring"))
        post = posts.create(
            scope,
            PostCreate(
                campaign_id=created.id,
                caption=caption,
                image_url=image_url,
                scheduled_at=utc_now() + due_in,
            ),
        )
        return created, post, connected

    return _seed
