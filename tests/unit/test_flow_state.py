"""
FlowStateMachine Unit Tests
===========================
Single-owner intents, expiry, and two-phase input capture.
"""

import asyncio
from decimal import Decimal

import pytest


class TestStartAndUpdate:
    """start_flow / update_data semantics."""

    def test_start_flow_creates_empty_intent(self, flows):
        from src.shared.state.flow_state import FlowKind

        intent = flows.start_flow("42", 1001, FlowKind.DEPOSIT)

        assert intent.kind is FlowKind.DEPOSIT
        assert intent.fields == {}
        assert flows.is_in_flow("42")
        assert flows.is_in_flow("42", FlowKind.DEPOSIT)
        assert not flows.is_in_flow("42", FlowKind.OPEN_POSITION)

    def test_second_start_discards_first(self, flows):
        """A new flow replaces the old one; no field survives."""
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1001, FlowKind.DEPOSIT)
        flows.update_data("42", token="USDC", amount=Decimal("100"))

        intent = flows.start_flow("42", 1001, FlowKind.OPEN_POSITION)

        assert flows.current_flow("42") is intent
        assert intent.kind is FlowKind.OPEN_POSITION
        assert intent.fields == {}
        assert len(flows) == 1

    def test_update_without_flow_is_noop(self, flows):
        assert flows.update_data("nobody", amount=Decimal("1")) is None
        assert flows.current_flow("nobody") is None

    def test_update_rejects_unknown_field(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1001, FlowKind.DEPOSIT)

        with pytest.raises(ValueError):
            flows.update_data("42", leverage=10)

    def test_clear_is_idempotent(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1001, FlowKind.DEPOSIT)
        flows.clear_flow("42")
        flows.clear_flow("42")

        assert not flows.is_in_flow("42")

    def test_finish_clears_same_intent(self, flows):
        from src.shared.state.flow_state import FlowKind

        intent = flows.start_flow("42", 1001, FlowKind.DEPOSIT)

        assert flows.finish_flow(intent)
        assert not flows.is_in_flow("42")
        assert not flows.finish_flow(intent)

    def test_finish_keeps_newer_intent(self, flows):
        from src.shared.state.flow_state import FlowKind

        old = flows.start_flow("42", 1001, FlowKind.DEPOSIT)
        newer = flows.start_flow("42", 1001, FlowKind.OPEN_POSITION)

        assert not flows.finish_flow(old)
        assert flows.current_flow("42") is newer


class TestCompleteness:
    """missing_fields per flow kind."""

    def test_deposit_requires_token_and_amount(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.DEPOSIT)
        assert flows.missing_fields("42") == ["token", "amount"]

        flows.update_data("42", token="USDC", amount=Decimal("5"))
        assert flows.is_complete("42")

    def test_limit_order_requires_price(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.OPEN_POSITION)
        flows.update_data("42", market_index=0, side="long", size=Decimal("1"), order_type="limit")

        assert flows.missing_fields("42") == ["limit_price"]
        assert not flows.is_complete("42")

    def test_no_flow_is_not_complete(self, flows):
        assert not flows.is_complete("ghost")
        assert flows.missing_fields("ghost") == []


class TestExpiry:
    """TTL refresh and sweeping with a fake clock."""

    def test_sweep_removes_only_expired(self, flows, clock):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("old", 1, FlowKind.DEPOSIT)
        clock.advance(200)
        flows.start_flow("new", 2, FlowKind.DEPOSIT)
        clock.advance(150)  # old idle 350s, new idle 150s

        removed = flows.sweep_expired()

        assert removed == 1
        assert not flows.is_in_flow("old")
        assert flows.is_in_flow("new")

    def test_update_refreshes_expiry(self, flows, clock):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.DEPOSIT)
        clock.advance(250)
        flows.update_data("42", token="USDC")
        clock.advance(250)

        assert flows.sweep_expired() == 0
        assert flows.is_in_flow("42")

    @pytest.mark.asyncio
    async def test_sweeper_task_runs_periodically(self, clock):
        from src.shared.state.flow_state import FlowKind, FlowStateMachine

        machine = FlowStateMachine(ttl_seconds=1, sweep_interval_seconds=0.01, clock=clock)
        machine.start_flow("42", 1, FlowKind.DEPOSIT)
        clock.advance(5)

        machine.start_sweeper()
        try:
            for _ in range(50):
                if not machine.is_in_flow("42"):
                    break
                await asyncio.sleep(0.01)
        finally:
            await machine.stop_sweeper()

        assert not machine.is_in_flow("42")

    @pytest.mark.asyncio
    async def test_stop_waits_for_sweeper_task(self, clock):
        from src.shared.state.flow_state import FlowStateMachine

        machine = FlowStateMachine(sweep_interval_seconds=60, clock=clock)
        machine.start_sweeper()
        task = machine._task

        await machine.stop_sweeper()

        assert task.done()
        assert machine._task is None

    @pytest.mark.asyncio
    async def test_sweep_error_does_not_stop_sweeper(self, clock, monkeypatch):
        from src.shared.state.flow_state import FlowStateMachine

        machine = FlowStateMachine(sweep_interval_seconds=0.01, clock=clock)
        calls = []

        def flaky_sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        monkeypatch.setattr(machine, "sweep_expired", flaky_sweep)
        machine.start_sweeper()
        try:
            for _ in range(50):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await machine.stop_sweeper()

        assert len(calls) >= 2


class TestTwoPhaseInput:
    """await_input / submit_input continuation."""

    def test_submit_fills_awaited_field(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.DEPOSIT)
        flows.await_input("42", "amount")

        intent = flows.submit_input("42", "$1,250.50")

        assert intent.get("amount") == Decimal("1250.50")
        assert intent.awaiting is None

    def test_submit_without_await_returns_none(self, flows):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.DEPOSIT)

        assert flows.submit_input("42", "100") is None

    def test_invalid_input_leaves_intent_untouched(self, flows):
        from src.shared.state.flow_state import FlowKind, InvalidInputError

        flows.start_flow("42", 1, FlowKind.CLOSE_POSITION)
        flows.await_input("42", "percentage")

        with pytest.raises(InvalidInputError):
            flows.submit_input("42", "150%")

        intent = flows.current_flow("42")
        assert intent.awaiting == "percentage"
        assert "percentage" not in intent.fields

    @pytest.mark.parametrize("field_name,text,expected", [
        ("side", " Long ", "long"),
        ("order_type", "LIMIT", "limit"),
        ("percentage", "25%", Decimal("25")),
        ("market_index", "2", 2),
        ("token", "usdc", "USDC"),
    ])
    def test_parsers(self, flows, field_name, text, expected):
        from src.shared.state.flow_state import FlowKind

        flows.start_flow("42", 1, FlowKind.OPEN_POSITION)
        flows.await_input("42", field_name)

        assert flows.submit_input("42", text).get(field_name) == expected

    @pytest.mark.parametrize("field_name,text", [
        ("size", "abc"),
        ("size", "-1"),
        ("amount", "0"),
        ("side", "sideways"),
        ("order_type", "stop"),
    ])
    def test_parse_failures(self, flows, field_name, text):
        from src.shared.state.flow_state import FlowKind, InvalidInputError

        flows.start_flow("42", 1, FlowKind.OPEN_POSITION)
        flows.await_input("42", field_name)

        with pytest.raises(InvalidInputError):
            flows.submit_input("42", text)
