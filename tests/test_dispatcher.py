"""Tests for the response dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from ism7ctl.core.dispatcher import ResponseDispatcher, is_type
from ism7ctl.core.messages import LoginResponse, SystemConfigResponse, TelegramBundleResponse


def _recorder(calls: list, label: str):
    async def handler(message, stop):
        calls.append((label, message))

    return handler


@pytest.mark.asyncio
async def test_once_subscription_fires_at_most_once():
    dispatcher = ResponseDispatcher()
    calls: list = []
    dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "login"), once=True)

    first = LoginResponse(state="ok", sid="1")
    assert await dispatcher.dispatch(first, asyncio.Event()) == 1
    assert await dispatcher.dispatch(LoginResponse(state="ok", sid="2"), asyncio.Event()) == 0
    assert calls == [("login", first)]
    assert len(dispatcher) == 0


@pytest.mark.asyncio
async def test_persistent_subscription_fires_for_every_match_in_order():
    dispatcher = ResponseDispatcher()
    calls: list = []
    dispatcher.subscribe(is_type(TelegramBundleResponse), _recorder(calls, "push"))

    messages = [TelegramBundleResponse(bundle_id=str(i)) for i in range(5)]
    for message in messages:
        await dispatcher.dispatch(message, asyncio.Event())
    assert [m for _, m in calls] == messages


@pytest.mark.asyncio
async def test_all_matching_subscriptions_run_in_registration_order():
    dispatcher = ResponseDispatcher()
    calls: list = []
    dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "a"))
    dispatcher.subscribe(lambda m: True, _recorder(calls, "b"), once=True)
    dispatcher.subscribe(is_type(SystemConfigResponse), _recorder(calls, "c"))

    message = LoginResponse(state="ok")
    assert await dispatcher.dispatch(message, asyncio.Event()) == 2
    assert [label for label, _ in calls] == ["a", "b"]


@pytest.mark.asyncio
async def test_unmatched_message_is_dropped():
    dispatcher = ResponseDispatcher()
    calls: list = []
    dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "login"), once=True)

    assert await dispatcher.dispatch(SystemConfigResponse(sid="1"), asyncio.Event()) == 0
    assert calls == []
    assert len(dispatcher) == 1


@pytest.mark.asyncio
async def test_subscription_added_during_dispatch_applies_to_next_message():
    dispatcher = ResponseDispatcher()
    calls: list = []

    async def chain(message, stop):
        calls.append(("first", message))
        dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "second"), once=True)

    dispatcher.subscribe(is_type(LoginResponse), chain, once=True)

    one = LoginResponse(sid="1")
    two = LoginResponse(sid="2")
    await dispatcher.dispatch(one, asyncio.Event())
    assert calls == [("first", one)]
    await dispatcher.dispatch(two, asyncio.Event())
    assert calls == [("first", one), ("second", two)]


@pytest.mark.asyncio
async def test_handler_error_propagates_and_once_is_still_consumed():
    dispatcher = ResponseDispatcher()

    async def boom(message, stop):
        raise ValueError("bad data")

    dispatcher.subscribe(is_type(LoginResponse), boom, once=True)
    with pytest.raises(ValueError):
        await dispatcher.dispatch(LoginResponse(), asyncio.Event())
    assert await dispatcher.dispatch(LoginResponse(), asyncio.Event()) == 0


@pytest.mark.asyncio
async def test_staged_subscriptions_survive_handler_error():
    dispatcher = ResponseDispatcher()
    calls: list = []

    async def register_then_fail(message, stop):
        dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "late"))
        raise RuntimeError("stop here")

    dispatcher.subscribe(is_type(LoginResponse), register_then_fail, once=True)
    with pytest.raises(RuntimeError):
        await dispatcher.dispatch(LoginResponse(sid="1"), asyncio.Event())
    await dispatcher.dispatch(LoginResponse(sid="2"), asyncio.Event())
    assert [label for label, _ in calls] == ["late"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_later_deliveries():
    dispatcher = ResponseDispatcher()
    calls: list = []
    subscription = dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "x"))

    await dispatcher.dispatch(LoginResponse(), asyncio.Event())
    dispatcher.unsubscribe(subscription)
    await dispatcher.dispatch(LoginResponse(), asyncio.Event())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_handler_can_unsubscribe_a_later_entry_in_the_same_pass():
    dispatcher = ResponseDispatcher()
    calls: list = []
    later = None

    async def cancel_later(message, stop):
        calls.append("first")
        dispatcher.unsubscribe(later)

    dispatcher.subscribe(is_type(LoginResponse), cancel_later)
    later = dispatcher.subscribe(is_type(LoginResponse), _recorder(calls, "later"))
    await dispatcher.dispatch(LoginResponse(), asyncio.Event())
    assert calls == ["first"]
