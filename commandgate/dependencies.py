"""Application dependency wiring."""

from __future__ import annotations

from functools import lru_cache

from redis import Redis

from commandgate.core.config import settings
from commandgate.github.platform import GitHubPlatform
from commandgate.repositories.redis_store import DecisionStore
from commandgate.services.decisions import DecisionService
from commandgate.telemetry import EventSink, sink_from_settings


@lru_cache
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


@lru_cache
def get_store() -> DecisionStore:
    return DecisionStore(get_redis_client())


@lru_cache
def get_event_sink() -> EventSink:
    return sink_from_settings()


def build_platform(token: str) -> GitHubPlatform:
    return GitHubPlatform(token, base_url=settings.github_base_url, retry=settings.github_retry_total)


@lru_cache
def get_github_platform() -> GitHubPlatform | None:
    if settings.github_token is None:
        return None
    return build_platform(settings.github_token.get_secret_value())


@lru_cache
def get_decision_service() -> DecisionService:
    return DecisionService(
        get_store(),
        get_github_platform(),
        platform_factory=build_platform,
        sink=get_event_sink(),
        allowlist_pat=settings.allowlist_pat,
    )
