"""Wire every component of the autonomy loop from Settings."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from mindloop.cache import ResponseCache
from mindloop.config import Settings
from mindloop.consolidation import MemoryConsolidator
from mindloop.contact import ContactGate, ProactiveMessenger
from mindloop.decision import DecisionEngine
from mindloop.gateway import Gateway
from mindloop.invoker import ExternalInvoker
from mindloop.models import auto_configure_model
from mindloop.notify import LogNotifier, WebhookNotifier
from mindloop.protocols import ModelProtocol, NotificationChannel
from mindloop.ratelimit import RateLimiter
from mindloop.resources import ResourceMonitor
from mindloop.scheduler import Scheduler
from mindloop.state import StateMachine
from mindloop.storage import SQLiteStorage
from mindloop.tasks import TaskQueue
from mindloop.trust import TrustScorer

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    storage: SQLiteStorage
    gateway: Gateway
    state_machine: StateMachine
    decisions: DecisionEngine
    tasks: TaskQueue
    contact_gate: ContactGate
    messenger: ProactiveMessenger
    trust: TrustScorer
    consolidator: MemoryConsolidator
    monitor: ResourceMonitor
    scheduler: Scheduler


def build_channel(settings: Settings) -> NotificationChannel:
    if settings.webhook_url:
        return WebhookNotifier(settings.webhook_url, timeout=settings.webhook_timeout)
    return LogNotifier()


def build_runtime(
    settings: Settings,
    *,
    model: Optional[ModelProtocol] = None,
    channel: Optional[NotificationChannel] = None,
    storage: Optional[SQLiteStorage] = None,
    monitor: Optional[ResourceMonitor] = None,
) -> Runtime:
    """Build the full component graph.

    ``model`` defaults to ``auto_configure_model``; with no model available
    the loop still runs and every decision is the fallback.
    """
    if model is None:
        model = auto_configure_model(settings.model_provider, settings.model)
        if model is None:
            logger.warning("No model configured, decisions will use the fallback")

    storage = storage or SQLiteStorage(settings.resolved_db_path())
    timeout = settings.store_timeout

    cache = ResponseCache(
        max_entries=settings.cache_max_entries, default_ttl=settings.cache_ttl_default
    )
    limiter = RateLimiter(
        max_calls=settings.rate_limit_max_calls,
        window=settings.rate_limit_window,
        min_interval=settings.rate_limit_min_interval,
        cooldown=settings.rate_limit_cooldown,
    )
    invoker = ExternalInvoker(
        model,
        timeout=settings.invoke_timeout,
        max_retries=settings.invoke_max_retries,
        retry_delay=settings.invoke_retry_delay,
    )
    gateway = Gateway(cache, limiter, invoker, ttls=settings.cache_ttls())

    state_machine = StateMachine(storage, store_timeout=timeout)
    decisions = DecisionEngine(
        gateway,
        storage,
        concept_limit=settings.context_concepts,
        question_limit=settings.context_questions,
        reflection_limit=settings.context_reflections,
        store_timeout=timeout,
    )
    tasks = TaskQueue(storage, gateway, store_timeout=timeout)
    contact_gate = ContactGate(
        storage,
        min_priority=settings.contact_min_priority,
        min_intensity=settings.contact_min_intensity,
        store_timeout=timeout,
    )
    messenger = ProactiveMessenger(
        storage, channel or build_channel(settings), store_timeout=timeout
    )
    trust = TrustScorer(
        storage,
        gateway=gateway,
        damping=settings.trust_damping,
        store_timeout=timeout,
        agent_id=settings.agent_id,
    )
    consolidator = MemoryConsolidator(
        storage,
        log_retention=timedelta(days=settings.log_retention_days),
        episode_retention=timedelta(days=settings.episode_retention_days),
        relation_floor=settings.relation_strength_floor,
        max_concepts=settings.max_concepts,
        max_relations=settings.max_relations,
        max_logs=settings.max_logs,
        max_episodes=settings.max_episodes,
        store_timeout=timeout,
    )
    monitor = monitor or ResourceMonitor(cache=cache)
    scheduler = Scheduler(
        state_machine,
        decisions,
        tasks,
        contact_gate,
        consolidator,
        monitor,
        messenger=messenger,
        gateway=gateway,
        cycle_interval=settings.cycle_interval,
        initial_delay=settings.initial_delay,
        consolidation_interval=settings.consolidation_interval,
        pressure_high_water=settings.pressure_high_water,
        agent_id=settings.agent_id,
    )
    return Runtime(
        settings=settings,
        storage=storage,
        gateway=gateway,
        state_machine=state_machine,
        decisions=decisions,
        tasks=tasks,
        contact_gate=contact_gate,
        messenger=messenger,
        trust=trust,
        consolidator=consolidator,
        monitor=monitor,
        scheduler=scheduler,
    )
