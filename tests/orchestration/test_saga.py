"""Tests for sagas and the compensation ledger."""

import json

import pytest
from structlog.testing import capture_logs

from taskhub.core.errors import TaskFailedError
from taskhub.core.models import OrchestrationStatus
from taskhub.execution.registry import Registry
from taskhub.execution.retry import RetryPolicy
from taskhub.orchestration.saga import CompensationLedger, Saga, SagaOptions, SagaStep

from tests._support.coordinator import InMemoryCoordinator

STEPS = [
    SagaStep("reserve_flight", "cancel_flight", input="LHR-JFK"),
    SagaStep("reserve_hotel", "cancel_hotel", input="NYC"),
    SagaStep("charge_card", "refund_card", input=420),
]

FORWARD_CALLS = ["reserve_flight", "reserve_hotel", "charge_card"]


def build_registry(
    options: SagaOptions | None = None,
    *,
    decline_card: bool = True,
    hotel_undo_fails: bool = False,
) -> Registry:
    registry = Registry()

    @registry.orchestrator("book_trip")
    def book_trip(ctx, _):
        saga = Saga(ctx, compensation_retry_policy=RetryPolicy(max_number_of_attempts=2), options=options)
        outcome = yield from saga.run(STEPS)
        if outcome.aborted:
            return {
                "status": "rolled_back",
                "error": outcome.failure.error_message,
                "compensated": list(outcome.compensated),
                "compensation_failures": len(outcome.compensation_failures),
            }
        return {"status": "booked", "confirmations": list(outcome.results)}

    @registry.activity("reserve_flight")
    def reserve_flight(ctx, route):
        return f"FL-{route}"

    @registry.activity("reserve_hotel")
    def reserve_hotel(ctx, city):
        return f"HT-{city}"

    @registry.activity("charge_card")
    def charge_card(ctx, amount):
        if decline_card:
            raise ValueError("card declined")
        return f"CH-{amount}"

    @registry.activity("cancel_flight")
    def cancel_flight(ctx, confirmation):
        assert confirmation == "FL-LHR-JFK"

    @registry.activity("cancel_hotel")
    def cancel_hotel(ctx, confirmation):
        if hotel_undo_fails:
            raise RuntimeError("hotel API down")
        assert confirmation == "HT-NYC"

    @registry.activity("refund_card")
    def refund_card(ctx, charge):
        pass

    return registry


def book(registry: Registry) -> tuple[InMemoryCoordinator, dict]:
    coordinator = InMemoryCoordinator(registry.freeze())
    action = coordinator.run("book_trip")
    assert action.status is OrchestrationStatus.COMPLETED
    return coordinator, json.loads(action.result)


class TestSaga:
    def test_all_steps_succeed(self):
        coordinator, result = book(build_registry(decline_card=False))

        assert result == {"status": "booked", "confirmations": ["FL-LHR-JFK", "HT-NYC", "CH-420"]}
        assert coordinator.activity_calls == FORWARD_CALLS

    def test_failure_compensates_in_reverse(self):
        coordinator, result = book(build_registry())

        assert coordinator.activity_calls == [*FORWARD_CALLS, "cancel_hotel", "cancel_flight"]
        assert result == {
            "status": "rolled_back",
            "error": "card declined",
            "compensated": ["cancel_hotel", "cancel_flight"],
            "compensation_failures": 0,
        }
        # One orchestrator episode per compensation
        assert coordinator.executions == 6

    def test_failed_compensation_does_not_stop_the_rest(self):
        with capture_logs() as logs:
            coordinator, result = book(build_registry(hotel_undo_fails=True))

        assert coordinator.activity_calls == [
            *FORWARD_CALLS,
            "cancel_hotel",
            "cancel_hotel",
            "cancel_flight",
        ]
        assert result["compensated"] == ["cancel_flight"]
        assert result["compensation_failures"] == 1

        failures = [e for e in logs if e["event"] == "saga.compensation_failed"]
        assert len(failures) == 1
        assert failures[0]["compensation"] == "cancel_hotel"
        assert failures[0]["log_level"] == "warning"

    def test_stop_at_first_failed_compensation(self):
        registry = build_registry(SagaOptions(continue_with_error=False), hotel_undo_fails=True)
        coordinator = InMemoryCoordinator(registry.freeze())

        action = coordinator.run("book_trip")

        assert action.status is OrchestrationStatus.FAILED
        assert action.failure.error_type == "taskhub.core.errors.SagaCompensationError"
        assert action.failure.error_message == "Compensation 'cancel_hotel' failed: hotel API down"
        assert "cancel_flight" not in coordinator.activity_calls


class TestParallelCompensation:
    def test_compensations_scheduled_together(self):
        coordinator, result = book(build_registry(SagaOptions(parallel_compensation=True)))

        assert coordinator.activity_calls == [*FORWARD_CALLS, "cancel_hotel", "cancel_flight"]
        assert result["compensated"] == ["cancel_hotel", "cancel_flight"]
        assert coordinator.executions == 5

    def test_batch_size_of_one_runs_one_at_a_time(self):
        coordinator, _ = book(build_registry(SagaOptions(parallel_compensation=True, max_parallel=1)))

        assert coordinator.executions == 6

    def test_failure_in_batch_keeps_other_results(self):
        with capture_logs() as logs:
            coordinator, result = book(
                build_registry(SagaOptions(parallel_compensation=True), hotel_undo_fails=True)
            )

        assert coordinator.activity_calls == [*FORWARD_CALLS, "cancel_hotel", "cancel_flight", "cancel_hotel"]
        assert result["compensated"] == ["cancel_flight"]
        assert result["compensation_failures"] == 1
        assert len([e for e in logs if e["event"] == "saga.compensation_failed"]) == 1

    def test_failure_in_batch_without_continue(self):
        options = SagaOptions(parallel_compensation=True, continue_with_error=False)
        coordinator = InMemoryCoordinator(build_registry(options, hotel_undo_fails=True).freeze())

        action = coordinator.run("book_trip")

        assert action.status is OrchestrationStatus.FAILED
        assert action.failure.error_message == "1 compensations failed"
        # The batch still ran the other compensation
        assert "cancel_flight" in coordinator.activity_calls

    def test_max_parallel_validated(self):
        with pytest.raises(ValueError):
            SagaOptions(max_parallel=0)


class TestRegisteredCompensation:
    def test_compensate_fan_out(self):
        deleted = []
        registry = Registry()

        @registry.orchestrator("provision")
        def provision(ctx, regions):
            saga = Saga(ctx, options=SagaOptions(parallel_compensation=True))
            hosts = yield ctx.when_all([ctx.call_activity("create_host", input=r) for r in regions])
            for host in hosts:
                saga.register_compensation("delete_host", host)
            try:
                yield ctx.call_activity("configure_dns", input=hosts)
            except TaskFailedError:
                compensated, failures = yield from saga.compensate()
                return {"rolled_back": list(compensated), "failures": len(failures)}
            return {"hosts": hosts}

        registry.add_activity(lambda ctx, region: f"host-{region}", "create_host")
        registry.add_activity(lambda ctx, host: deleted.append(host), "delete_host")

        @registry.activity("configure_dns")
        def configure_dns(ctx, hosts):
            raise RuntimeError("zone locked")

        coordinator = InMemoryCoordinator(registry.freeze())
        action = coordinator.run("provision", ["a", "b"])

        assert json.loads(action.result) == {"rolled_back": ["delete_host", "delete_host"], "failures": 0}
        assert deleted == ["host-b", "host-a"]

    def test_empty_token_rejected(self):
        saga = Saga(ctx=None)  # type: ignore[arg-type]

        with pytest.raises(ValueError):
            saga.register_compensation("")


class TestCompensationLedger:
    def test_drain_is_last_in_first_out(self):
        ledger = CompensationLedger()
        ledger.record("undo_a", 1)
        ledger.record("undo_b")

        entries = ledger.drain()

        assert [(e.token, e.input) for e in entries] == [("undo_b", None), ("undo_a", 1)]
        assert len(ledger) == 0

    def test_tokens(self):
        ledger = CompensationLedger()
        ledger.record("undo_a")
        ledger.record("undo_b")

        assert ledger.tokens == ("undo_a", "undo_b")

    def test_token_required(self):
        with pytest.raises(ValueError):
            CompensationLedger().record("")
