"""Lightweight service container shared by the abuse engine modules."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

import asyncpg
from redis.asyncio import Redis

from abuseguard.abuse.domain.dispatch import NotificationDispatcher
from abuseguard.abuse.domain.evidence import Evidence
from abuseguard.abuse.domain.ledger import AbuseLedger, InMemoryAbuseLedger
from abuseguard.abuse.domain.models import Severity, ViolationType, WeeklyStats
from abuseguard.abuse.domain.notifier import AdminNotifier
from abuseguard.abuse.domain.policy import PolicyConfig, load_policy
from abuseguard.abuse.domain.recorder import ViolationRecorder
from abuseguard.abuse.domain.stats import StatsAggregator
from abuseguard.abuse.domain.suspensions import AccountStatusStore, SuspensionEnforcer, SuspensionMarkers
from abuseguard.abuse.domain.violations import ViolationStore
from abuseguard.abuse.infra.ledger_repo import PostgresAbuseLedger
from abuseguard.abuse.infra.outbound import RedisStreamDispatcher
from abuseguard.abuse.infra.suspension_store import RedisAccountStatusStore, RedisSuspensionMarkers
from abuseguard.abuse.infra.violation_store import RedisViolationStore
from abuseguard.infra.redis import RedisProxy, redis_client
from abuseguard.settings import settings


def _initial_policy() -> PolicyConfig:
    if settings.abuse_policy_path:
        return load_policy(settings.abuse_policy_path)
    return PolicyConfig.default()


_redis_proxy: RedisProxy = redis_client
_policy: PolicyConfig = _initial_policy()
_frontend_url: str = settings.abuse_frontend_url
_store: ViolationStore = RedisViolationStore(_redis_proxy)
_ledger: AbuseLedger = InMemoryAbuseLedger()
_markers: SuspensionMarkers = RedisSuspensionMarkers(_redis_proxy)
_accounts: AccountStatusStore = RedisAccountStatusStore(_redis_proxy)
_dispatcher: NotificationDispatcher = RedisStreamDispatcher(
    _redis_proxy,
    stream_key=settings.abuse_outbound_stream,
    maxlen=settings.abuse_outbound_maxlen,
)
_stats = StatsAggregator(store=_store, policy=_policy)
_notifier = AdminNotifier(store=_store, ledger=_ledger, policy=_policy)
_enforcer = SuspensionEnforcer(
    markers=_markers,
    accounts=_accounts,
    ledger=_ledger,
    notifier=_notifier,
    dispatcher=_dispatcher,
    store=_store,
    policy=_policy,
    frontend_url=_frontend_url,
)
_recorder = ViolationRecorder(
    store=_store,
    stats=_stats,
    notifier=_notifier,
    enforcer=_enforcer,
    dispatcher=_dispatcher,
    policy=_policy,
    frontend_url=_frontend_url,
)


def configure(
    *,
    policy: Optional[PolicyConfig] = None,
    redis_proxy: Optional[RedisProxy] = None,
    store: Optional[ViolationStore] = None,
    ledger: Optional[AbuseLedger] = None,
    markers: Optional[SuspensionMarkers] = None,
    accounts: Optional[AccountStatusStore] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    frontend_url: Optional[str] = None,
) -> None:
    """Swap collaborators and rebuild the services that depend on them."""

    global _redis_proxy, _policy, _frontend_url, _store, _ledger, _markers, _accounts, _dispatcher
    global _stats, _notifier, _enforcer, _recorder
    if redis_proxy is not None:
        _redis_proxy = redis_proxy
        _store = RedisViolationStore(_redis_proxy)
        _markers = RedisSuspensionMarkers(_redis_proxy)
        _accounts = RedisAccountStatusStore(_redis_proxy)
        _dispatcher = RedisStreamDispatcher(
            _redis_proxy,
            stream_key=settings.abuse_outbound_stream,
            maxlen=settings.abuse_outbound_maxlen,
        )
    if policy is not None:
        _policy = policy
    if frontend_url is not None:
        _frontend_url = frontend_url
    if store is not None:
        _store = store
    if ledger is not None:
        _ledger = ledger
    if markers is not None:
        _markers = markers
    if accounts is not None:
        _accounts = accounts
    if dispatcher is not None:
        _dispatcher = dispatcher

    _stats = StatsAggregator(store=_store, policy=_policy)
    _notifier = AdminNotifier(store=_store, ledger=_ledger, policy=_policy)
    _enforcer = SuspensionEnforcer(
        markers=_markers,
        accounts=_accounts,
        ledger=_ledger,
        notifier=_notifier,
        dispatcher=_dispatcher,
        store=_store,
        policy=_policy,
        frontend_url=_frontend_url,
    )
    _recorder = ViolationRecorder(
        store=_store,
        stats=_stats,
        notifier=_notifier,
        enforcer=_enforcer,
        dispatcher=_dispatcher,
        policy=_policy,
        frontend_url=_frontend_url,
    )


def get_policy() -> PolicyConfig:
    return _policy


def get_violation_store() -> ViolationStore:
    return _store


def get_ledger() -> AbuseLedger:
    return _ledger


def get_markers() -> SuspensionMarkers:
    return _markers


def get_accounts() -> AccountStatusStore:
    return _accounts


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def get_stats_aggregator() -> StatsAggregator:
    return _stats


def get_notifier() -> AdminNotifier:
    return _notifier


def get_enforcer() -> SuspensionEnforcer:
    return _enforcer


def get_recorder() -> ViolationRecorder:
    return _recorder


async def record_violation(
    user_id: str,
    violation_type: ViolationType | str,
    severity: Severity | str,
    evidence: Evidence | Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> WeeklyStats:
    return await _recorder.record_violation(user_id, violation_type, severity, evidence, now=now)


async def is_user_suspended(user_id: str) -> bool:
    return await _enforcer.is_user_suspended(user_id)


def configure_postgres(
    pool: asyncpg.Pool,
    redis_conn: Redis | RedisProxy,
    *,
    policy_path: Optional[str] = None,
    frontend_url: Optional[str] = None,
) -> None:
    proxy = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    configure(
        policy=load_policy(policy_path) if policy_path else None,
        redis_proxy=proxy,
        ledger=PostgresAbuseLedger(pool),
        frontend_url=frontend_url,
    )
