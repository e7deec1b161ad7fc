"""
Unit Tests - Agentic Loop

Tests for leaf retries, reflection, self-correction, composite
execution, goal mirroring and configuration.
"""

import pytest

from autonomy.core import (
    ConfigurationError,
    ForcedRollbackError,
    GoalPriority,
    GoalStatus,
    MaxAttemptsExceededError,
    TaskStatus,
)
from autonomy.observability import InMemoryMetricsSink
from autonomy.observability.events import EventType
from autonomy.reasoning.stub_provider import CORRECT, EXECUTE, REFLECT, ScriptedResponse
from tests.fixtures import about, answer, correction, execution, fix, reflection, split, verdict


class TestLeafExecution:
    """Tests for the attempt / reflect / correct cycle of a leaf."""

    @pytest.mark.asyncio
    async def test_confident_answer_completes(self, engine):
        result = await engine.execute_task("Write the changelog")

        assert result.success
        assert result.error is None
        assert result.result["output"] == "[STUB] task completed"
        assert len(result.execution_trace) == 1
        assert result.execution_trace[0].success
        assert len(result.reflections) == 1
        assert engine.get_current_task().status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_low_confidence_exhausts_attempts(self, make_engine, provider):
        provider.add_response(answer("Guess the password", execution(confidence=0.3)))
        engine = make_engine(rollback_enabled=False)

        result = await engine.execute_task("Guess the password")

        root = engine.get_current_task()
        assert not result.success
        assert "after 3 attempts" in result.error
        assert root.status == TaskStatus.FAILED
        assert root.attempts == 3
        assert [s.success for s in result.execution_trace] == [False, False, False]
        assert len(provider.calls_matching(EXECUTE)) == 3
        assert len(provider.calls_matching(CORRECT)) == 2

    @pytest.mark.asyncio
    async def test_missing_confidence_counts_as_zero(self, make_engine, provider):
        provider.add_response(answer("Vague", execution(confidence=None)))
        engine = make_engine(max_attempts=1, rollback_enabled=False)

        result = await engine.execute_task("Vague")

        assert not result.success
        assert "Low confidence (0.00)" in result.execution_trace[0].actual_outcome

    @pytest.mark.asyncio
    async def test_unparsable_answer_is_retried(self, make_engine, provider):
        provider.add_response(answer("Parse me", ["not json at all", execution(0.95, "parsed")]))
        engine = make_engine()

        result = await engine.execute_task("Parse me")

        assert result.success
        assert result.result["output"] == "parsed"
        assert engine.get_current_task().attempts == 2

    @pytest.mark.asyncio
    async def test_provider_failure_is_retried(self, make_engine, provider):
        provider.add_response(
            ScriptedResponse(pattern=about(EXECUTE, "Unreachable"), error=RuntimeError("503"))
        )
        engine = make_engine(rollback_enabled=False)

        result = await engine.execute_task("Unreachable")

        assert not result.success
        assert engine.get_current_task().attempts == 3
        assert "Reasoning provider failed" in result.execution_trace[0].actual_outcome

    @pytest.mark.asyncio
    async def test_self_correction_merges_context(self, make_engine, provider):
        provider.add_response(answer("Fetch data", execution(confidence=0.2)))
        provider.add_response(answer("Fetch with backoff", execution(0.9, "fetched")))
        provider.add_response(fix(correction({"retries": 2}, new_approach="Fetch with backoff")))
        engine = make_engine()

        result = await engine.execute_task("Fetch data", {"url": "https://example.test"})

        root = engine.get_current_task()
        assert result.success
        assert root.context == {"url": "https://example.test", "retries": 2}
        assert root.description == "Fetch with backoff"
        assert [a.description for a in root.attempt_history] == ["Fetch data", "Fetch with backoff"]
        assert root.attempt_history[0].context == {"url": "https://example.test"}

    @pytest.mark.asyncio
    async def test_correction_failure_changes_nothing(self, make_engine, provider):
        provider.add_response(answer("Stable", [execution(0.1), execution(0.9)]))
        provider.add_response(ScriptedResponse(pattern=CORRECT, error=RuntimeError("down")))
        engine = make_engine()

        result = await engine.execute_task("Stable", {"k": "v"})

        assert result.success
        assert engine.get_current_task().context == {"k": "v"}


class TestReflection:
    """Tests for reflection verdicts."""

    @pytest.mark.asyncio
    async def test_retry_with_modified_approach(self, make_engine, provider):
        provider.add_response(
            verdict(
                [
                    reflection(
                        isSuccessful=False,
                        shouldRetry=True,
                        modifiedApproach="Use a streaming parser",
                    ),
                    reflection(),
                ]
            )
        )
        engine = make_engine()

        result = await engine.execute_task("Parse the log")

        root = engine.get_current_task()
        assert result.success
        assert root.attempts == 2
        assert root.description == "Use a streaming parser"
        assert len(result.reflections) == 2
        assert result.reflections[0]["should_retry"] is True

    @pytest.mark.asyncio
    async def test_retry_requests_exhaust_attempts(self, make_engine, provider):
        provider.add_response(verdict(reflection(isSuccessful=False, shouldRetry=True)))
        engine = make_engine(rollback_enabled=False)

        result = await engine.execute_task("Never good enough")

        assert not result.success
        assert "after 3 attempts" in result.error
        assert engine.get_current_task().status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_successful_verdict_ignores_retry_flag(self, engine, provider):
        provider.add_response(verdict(reflection(isSuccessful=True, shouldRetry=True)))

        result = await engine.execute_task("Good enough")

        assert result.success
        assert engine.get_current_task().attempts == 1

    @pytest.mark.asyncio
    async def test_unusable_verdict_accepts_result(self, engine, provider):
        provider.add_response(verdict("I think it is fine?"))

        result = await engine.execute_task("Ambiguous review")

        assert result.success

    @pytest.mark.asyncio
    async def test_reflection_provider_failure_accepts_result(self, engine, provider):
        provider.add_response(ScriptedResponse(pattern=REFLECT, error=RuntimeError("timeout")))

        result = await engine.execute_task("Unreviewed")

        assert result.success

    @pytest.mark.asyncio
    async def test_reflection_disabled(self, make_engine, provider):
        engine = make_engine(reflection_enabled=False)

        result = await engine.execute_task("Quick fix")

        assert result.success
        assert result.reflections == []
        assert provider.calls_matching(REFLECT) == []

    @pytest.mark.asyncio
    async def test_forced_rollback_is_not_retried(self, engine, provider):
        provider.add_response(verdict(reflection(isSuccessful=False, shouldRollback=True)))
        task = engine.arena.create("Drop the cache")

        with pytest.raises(ForcedRollbackError):
            await engine.execute(task.id)

        assert task.status == TaskStatus.FAILED
        assert task.attempts == 1

    @pytest.mark.asyncio
    async def test_execute_raises_after_last_attempt(self, engine, provider):
        provider.add_response(answer("Hopeless", execution(confidence=0.1)))
        task = engine.arena.create("Hopeless", max_attempts=2)

        with pytest.raises(MaxAttemptsExceededError) as exc_info:
            await engine.execute(task.id)

        assert exc_info.value.attempts == 2
        assert task.status == TaskStatus.FAILED


class TestCompositeExecution:
    """Tests for fan-out over subtasks."""

    @pytest.mark.asyncio
    async def test_parallel_collects_child_results(self, engine, provider):
        provider.add_response(split("Release", "Build wheels", "Run test suite"))

        result = await engine.execute_task("Release")

        build, tests = engine.arena.children(result.task_id)
        assert result.success
        assert result.result == [build.result, tests.result]
        assert all(t.status == TaskStatus.COMPLETED for t in engine.get_task_tree())

    @pytest.mark.asyncio
    async def test_parallel_failure_fails_parent(self, make_engine, provider):
        provider.add_response(split("Ship", "Compile", "Deploy"))
        provider.add_response(answer("Compile", execution(confidence=0.1)))
        engine = make_engine(max_attempts=1, rollback_enabled=False)

        result = await engine.execute_task("Ship")

        root = engine.get_current_task()
        compile_task, deploy = engine.arena.children(root.id)
        assert not result.success
        assert root.status == TaskStatus.FAILED
        assert compile_task.status == TaskStatus.FAILED
        assert deploy.status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_sequential_stops_at_first_failure(self, make_engine, provider):
        provider.add_response(split("Ship", "Compile", "Deploy"))
        provider.add_response(answer("Compile", execution(confidence=0.1)))
        engine = make_engine(parallel_execution=False, max_attempts=1, rollback_enabled=False)

        result = await engine.execute_task("Ship")

        _, deploy = engine.arena.children(result.task_id)
        assert not result.success
        assert deploy.status == TaskStatus.PENDING
        assert provider.calls_matching(about(EXECUTE, "Deploy")) == []

    @pytest.mark.asyncio
    async def test_failed_run_rolls_back_whole_tree(self, make_engine, provider):
        provider.add_response(split("Ship", "Compile", "Deploy"))
        provider.add_response(answer("Compile", execution(confidence=0.1)))
        engine = make_engine(max_attempts=1)

        result = await engine.execute_task("Ship", {"env": "staging"})

        assert not result.success
        tree = engine.get_task_tree()
        assert all(t.status == TaskStatus.ROLLED_BACK for t in tree)
        assert all(t.result is None for t in tree)
        assert all(t.context == {"env": "staging"} for t in tree)
        assert len(engine.events.history(EventType.TASK_ROLLED_BACK)) == 3


class TestGoalMirroring:
    """Tests for the goal tree that mirrors a run."""

    @pytest.mark.asyncio
    async def test_goal_tree_mirrors_task_tree(self, engine, provider):
        provider.add_response(split("Launch", "Write code", "Write docs"))

        result = await engine.execute_task("Launch")

        root_goal = engine.goals.get_goal(result.goal_id)
        subgoals = engine.goals.get_subgoals(root_goal.id)
        assert root_goal.priority == GoalPriority.HIGH
        assert root_goal.success_criteria == ["Task completed successfully"]
        assert [g.description for g in subgoals] == ["Write code", "Write docs"]
        assert all(g.status == GoalStatus.COMPLETED for g in subgoals)
        assert root_goal.status == GoalStatus.COMPLETED
        assert root_goal.progress == 100
        assert root_goal.metadata["task_id"] == result.task_id

    @pytest.mark.asyncio
    async def test_failed_run_fails_goal(self, make_engine, provider):
        provider.add_response(answer("Doomed", execution(confidence=0.0)))
        engine = make_engine(max_attempts=1)

        result = await engine.execute_task("Doomed")

        assert engine.goals.get_goal(result.goal_id).status == GoalStatus.FAILED

    @pytest.mark.asyncio
    async def test_unmet_criteria_fail_the_run(self, engine):
        result = await engine.execute_task(
            "Add caching",
            success_criteria=["cache invalidation documented"],
        )

        assert not result.success
        assert engine.get_current_task().status == TaskStatus.COMPLETED
        assert engine.goals.get_goal(result.goal_id).status == GoalStatus.FAILED
        assert engine.goals.get_goal(result.goal_id).metadata["criteria_met"] is False

    @pytest.mark.asyncio
    async def test_unmet_criteria_keep_derived_composite_status(self, engine, provider):
        provider.add_response(split("Launch", "Write code", "Write docs"))

        result = await engine.execute_task("Launch", success_criteria=["kubernetes rollout verified"])

        root_goal = engine.goals.get_goal(result.goal_id)
        assert not result.success
        assert all(g.status == GoalStatus.COMPLETED for g in engine.goals.get_subgoals(root_goal.id))
        assert root_goal.status == GoalStatus.COMPLETED
        assert root_goal.progress == 100
        assert root_goal.metadata["criteria_met"] is False
        assert root_goal.metadata["run_outcome"] == "failed"

    @pytest.mark.asyncio
    async def test_met_criteria_succeed(self, engine, provider):
        provider.add_response(answer("Add caching", execution(0.9, "LRU cache with invalidation hooks")))

        result = await engine.execute_task("Add caching", success_criteria=["cache invalidation"])

        assert result.success


class TestRunBookkeeping:
    """Tests for traces, history, metrics and configuration."""

    @pytest.mark.asyncio
    async def test_trace_covers_only_this_run(self, engine):
        first = await engine.execute_task("First")
        second = await engine.execute_task("Second")

        assert [s.action for s in second.execution_trace] == ["Second"]
        assert len(engine.get_execution_history()) == 2
        assert first.task_id not in engine.arena
        assert len(engine.goals.get_all_goals()) == 2

    @pytest.mark.asyncio
    async def test_stats_and_clear_history(self, make_engine, provider):
        provider.add_response(answer("Flaky", [execution(0.1), execution(0.9)]))
        engine = make_engine()
        await engine.execute_task("Flaky")

        stats = engine.get_stats()
        assert stats["total_steps"] == 2
        assert stats["failed_steps"] == 1
        assert stats["success_rate"] == 0.5

        engine.clear_history()
        assert engine.get_execution_history() == []
        assert len(engine.checkpoints) == 0

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, make_engine):
        metrics = InMemoryMetricsSink()
        engine = make_engine(metrics=metrics)

        await engine.execute_task("Measured")

        assert metrics.productivity[0][0] == "task_completed"
        assert metrics.calibration[0].predicted == 0.7
        assert metrics.calibration[0].actual == 1.0

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, engine):
        result = await engine.execute_task("Observed")

        types = [e.type for e in engine.events.history()]
        assert types[:2] == [EventType.LOOP_STARTED, EventType.GOAL_CREATED]
        assert engine.events.history()[0].data["goal_id"] == result.goal_id
        assert types[-1] == EventType.LOOP_COMPLETED
        assert EventType.STEP_EXECUTED in types

    def test_set_config(self, engine):
        settings = engine.set_config(max_depth=1, parallel_execution=False)

        assert settings.max_depth == 1
        assert engine.get_config()["parallel_execution"] is False
        assert engine.get_config()["max_attempts"] == 3

    def test_set_config_rejects_invalid_values(self, engine):
        with pytest.raises(ConfigurationError):
            engine.set_config(max_attempts=0)

        with pytest.raises(ConfigurationError):
            engine.set_config(confidence_threshold=1.5)

        assert engine.settings.max_attempts == 3

    @pytest.mark.asyncio
    async def test_config_applies_to_next_run(self, engine, provider):
        provider.add_response(split("Plan", "step a", "step b"))
        engine.set_config(max_depth=0)

        result = await engine.execute_task("Plan")

        assert result.success
        assert engine.get_current_task().is_leaf
