"""
Engine Factory

Composition root: the one place that constructs and wires engine services.
No component reaches for a global; everything arrives through here.
"""

from autonomy.config.settings import Settings
from autonomy.core.exceptions import ConfigurationError
from autonomy.core.interfaces import (
    MetricsSinkProtocol,
    ModeGateProtocol,
    PolicyEngineProtocol,
    ReasoningProviderProtocol,
)
from autonomy.observability.events import EventBus
from autonomy.observability.logging import StructuredLogger, configure_logging
from autonomy.observability.metrics import InMemoryMetricsSink
from autonomy.planning.arena import TaskArena
from autonomy.planning.checkpoints import CheckpointManager
from autonomy.planning.goals import GoalTracker
from autonomy.reasoning.client import ReasoningClient
from autonomy.reasoning.http_provider import create_provider
from autonomy.runtime.loop import AgenticLoop
from autonomy.safety.gate import SafetyGate
from autonomy.safety.modes import ApprovalChannel, ModeGate, PermissivePolicyEngine


def create_engine(
    provider: ReasoningProviderProtocol,
    settings: Settings | None = None,
    policy_engine: PolicyEngineProtocol | None = None,
    mode_gate: ModeGateProtocol | None = None,
    metrics: MetricsSinkProtocol | None = None,
    events: EventBus | None = None,
    logger: StructuredLogger | None = None,
) -> AgenticLoop:
    """
    Create an AgenticLoop with the specified components.

    This is the simplest way to create an engine. For more control,
    use EngineBuilder.

    Args:
        provider: Required reasoning provider
        settings: Optional settings (defaults from the environment)
        policy_engine: Optional policy engine (defaults to permissive)
        mode_gate: Optional mode gate (defaults to ModeGate in the configured mode)
        metrics: Optional metrics sink
        events: Optional event bus, e.g. one with subscribers already attached
        logger: Optional root logger

    Returns:
        Configured AgenticLoop
    """
    settings = settings or Settings()

    if logger is None:
        logger = configure_logging(
            settings.observability.log_level,
            json_output=settings.observability.log_format == "json",
        )

    events = events or EventBus(logger=logger.child("events"))
    metrics = metrics or InMemoryMetricsSink()

    if mode_gate is None:
        mode_gate = ModeGate(
            settings.safety.mode,
            ApprovalChannel(logger.child("approvals")),
            logger.child("modes"),
        )

    safety = SafetyGate(
        policy_engine or PermissivePolicyEngine(),
        mode_gate,
        settings=settings.safety,
        metrics=metrics,
        logger=logger.child("safety"),
    )

    arena = TaskArena()
    return AgenticLoop(
        client=ReasoningClient(provider, logger.child("reasoning")),
        safety=safety,
        goals=GoalTracker(events, logger.child("goals")),
        events=events,
        metrics=metrics,
        settings=settings.loop,
        arena=arena,
        checkpoints=CheckpointManager(arena, events, logger.child("checkpoints")),
        logger=logger.child("loop"),
    )


def create_engine_from_settings(settings: Settings | None = None) -> AgenticLoop:
    """
    Create an engine whose provider is chosen by the settings.

    With the default `scripted` provider kind no network access happens.
    """
    settings = settings or Settings()
    return create_engine(create_provider(settings.provider), settings=settings)


class EngineBuilder:
    """
    Builder pattern for AgenticLoop.

    Provides a fluent API for constructing engines:

        engine = (
            EngineBuilder()
            .with_provider(provider)
            .with_policy_engine(policies)
            .with_settings(load_settings("autonomy.yaml"))
            .build()
        )
    """

    def __init__(self):
        self._provider: ReasoningProviderProtocol | None = None
        self._settings: Settings | None = None
        self._policy_engine: PolicyEngineProtocol | None = None
        self._mode_gate: ModeGateProtocol | None = None
        self._metrics: MetricsSinkProtocol | None = None
        self._events: EventBus | None = None
        self._logger: StructuredLogger | None = None

    def with_provider(self, provider: ReasoningProviderProtocol) -> "EngineBuilder":
        """Set the reasoning provider (required)."""
        self._provider = provider
        return self

    def with_settings(self, settings: Settings) -> "EngineBuilder":
        self._settings = settings
        return self

    def with_policy_engine(self, policy_engine: PolicyEngineProtocol) -> "EngineBuilder":
        self._policy_engine = policy_engine
        return self

    def with_mode_gate(self, mode_gate: ModeGateProtocol) -> "EngineBuilder":
        self._mode_gate = mode_gate
        return self

    def with_metrics(self, metrics: MetricsSinkProtocol) -> "EngineBuilder":
        self._metrics = metrics
        return self

    def with_events(self, events: EventBus) -> "EngineBuilder":
        self._events = events
        return self

    def with_logger(self, logger: StructuredLogger) -> "EngineBuilder":
        self._logger = logger
        return self

    def build(self) -> AgenticLoop:
        """
        Build the AgenticLoop.

        Raises:
            ConfigurationError: If no reasoning provider is set
        """
        if self._provider is None:
            raise ConfigurationError(
                "Reasoning provider is required. Use .with_provider() to set it."
            )

        return create_engine(
            self._provider,
            settings=self._settings,
            policy_engine=self._policy_engine,
            mode_gate=self._mode_gate,
            metrics=self._metrics,
            events=self._events,
            logger=self._logger,
        )
