"""Enumerations shared across storecast.

Values are the strings persisted in the database, so renaming a member's
value is a data migration.
"""

from __future__ import annotations

from enum import Enum


class CampaignStage(str, Enum):
    """Campaign lifecycle stage."""

    DRAFT = "Draft"
    IN_REVIEW = "InReview"
    SCHEDULED = "Scheduled"
    READY = "Ready"
    PUBLISHED = "Published"


class PublishStatus(str, Enum):
    """Publish status shared by posts and post targets."""

    PENDING = "Pending"
    PUBLISHING = "Publishing"
    PUBLISHED = "Published"
    FAILED = "Failed"


class Platform(str, Enum):
    """Distribution target families with a built-in publisher."""

    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"


class TriggerType(str, Enum):
    """Kinds of recurring-task descriptors."""

    PUBLISH_DUE_POSTS = "PublishDuePosts"
    PUBLISH_POST = "PublishPost"


__all__ = ["CampaignStage", "Platform", "PublishStatus", "TriggerType"]
