"""
Tests for the automation agent running against a scripted meeting page.
"""

import asyncio

from conftest import FakeMeetingSurface, drain, make_settings, wait_until
from meet_capture.agent import AutomationAgent
from meet_capture.protocol import CommandType, ControlChannel, EventChannel, make_command


def make_agent(surface, settings=None):
    settings = settings or make_settings()
    control = ControlChannel()
    events = EventChannel()
    queue = events.subscribe()
    agent = AutomationAgent(surface, control, events, settings.bot, "sess-test")
    return agent, control, queue


def statuses(messages):
    return [m["data"]["status"] for m in messages if m["type"] == "status"]


def of_type(messages, event_type):
    return [m for m in messages if m["type"] == event_type]


async def start_recording(surface, settings=None):
    agent, control, queue = make_agent(surface, settings)
    serve_task = asyncio.create_task(agent.serve())
    control.send(make_command(CommandType.START))
    await wait_until(lambda: agent._capturing)
    return agent, control, queue, serve_task


async def shutdown(control, serve_task):
    control.close()
    await serve_task


def test_join_flow_reaches_recording():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        await wait_until(lambda: "recording" in statuses(list(queue._queue)))
        await shutdown(control, serve_task)
        return drain(queue)

    messages = asyncio.run(scenario())

    assert messages[0]["type"] == "loaded"
    assert statuses(messages) == ["joining", "waiting_admission", "in_meeting", "recording"]
    assert surface.join_clicks == 1


def test_failed_mute_does_not_abort_join():
    surface = FakeMeetingSurface(mute_error=RuntimeError("no microphone button"))

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        await shutdown(control, serve_task)

    asyncio.run(scenario())

    # Retried up to the configured attempts, then the join went ahead
    assert surface.mute_calls == 2
    assert surface.join_clicks == 1


def test_rejection_reports_failure():
    surface = FakeMeetingSurface(reject_on_join=True)

    async def scenario():
        agent, control, queue = make_agent(surface)
        serve_task = asyncio.create_task(agent.serve())
        control.send(make_command(CommandType.START))
        await wait_until(lambda: "failed" in statuses(list(queue._queue)))
        await shutdown(control, serve_task)
        return drain(queue)

    messages = asyncio.run(scenario())
    failed = [m for m in of_type(messages, "status") if m["data"]["status"] == "failed"]

    assert failed[0]["data"]["error"] == "Blocked from joining the meeting"
    assert surface.callback is None


def test_admission_timeout_reports_failure():
    surface = FakeMeetingSurface(admit_on_join=False)
    settings = make_settings(join_timeout_seconds=0.2)

    async def scenario():
        agent, control, queue = make_agent(surface, settings)
        serve_task = asyncio.create_task(agent.serve())
        control.send(make_command(CommandType.START))
        await wait_until(lambda: "failed" in statuses(list(queue._queue)))
        await shutdown(control, serve_task)
        return drain(queue)

    messages = asyncio.run(scenario())
    failed = [m for m in of_type(messages, "status") if m["data"]["status"] == "failed"]

    assert failed[0]["data"]["error"].startswith("Timed out waiting for admission")
    assert "in_meeting" not in statuses(messages)


def test_captions_are_emitted_with_speaker_fallback():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        await surface.speak("Alice", "Hello everyone, thanks for joining")
        await surface.speak(None, "Another thought about the budget")
        await surface.speak("Alice", "closed_caption")
        await shutdown(control, serve_task)
        return drain(queue)

    captions = of_type(asyncio.run(scenario()), "caption")

    assert [(c["data"]["speaker"], c["data"]["text"]) for c in captions] == [
        ("Alice", "Hello everyone, thanks for joining"),
        ("Alice", "Another thought about the budget"),
    ]


def test_exit_phrase_seen_twice_leaves_once():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        await surface.speak("Alice", "Hello everyone, thanks for joining")
        callback = surface.callback
        await asyncio.gather(
            callback("Alice", "Bot, please leave"),
            callback("Alice", "Bot, please leave now"),
        )
        await wait_until(lambda: agent.has_left)
        await shutdown(control, serve_task)
        return drain(queue)

    messages = asyncio.run(scenario())
    completed = of_type(messages, "completed")

    assert len(completed) == 1
    assert completed[0]["data"]["reason"] == "exit_phrase"
    assert [s["text"] for s in completed[0]["data"]["segments"]] == ["Hello everyone, thanks for joining"]
    assert statuses(messages).count("leaving") == 1
    assert surface.leave_clicks == 1


def test_leave_meeting_runs_once():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        results = await asyncio.gather(
            agent.leave_meeting("stopped"),
            agent.leave_meeting("meeting_ended"),
        )
        await shutdown(control, serve_task)
        return results, drain(queue)

    results, messages = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert len(of_type(messages, "completed")) == 1
    assert surface.leave_clicks == 1


def test_stop_command_leaves_meeting():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        control.send(make_command(CommandType.STOP))
        await wait_until(lambda: agent.has_left)
        await shutdown(control, serve_task)
        return drain(queue)

    completed = of_type(asyncio.run(scenario()), "completed")

    assert completed[0]["data"]["reason"] == "stopped"


def test_meeting_end_is_detected():
    surface = FakeMeetingSurface()

    async def scenario():
        agent, control, queue, serve_task = await start_recording(surface)
        surface.end_meeting()
        await wait_until(lambda: agent.has_left)
        await shutdown(control, serve_task)
        return drain(queue)

    completed = of_type(asyncio.run(scenario()), "completed")

    assert completed[0]["data"]["reason"] == "meeting_ended"


def test_flush_only_marks_when_received():
    surface = FakeMeetingSurface()
    settings = make_settings()
    events = EventChannel()
    agent = AutomationAgent(surface, ControlChannel(), events, settings.bot, "sess-flush")
    agent.aggregator.observe("Alice", "Hello everyone, thanks for joining")

    assert agent.flush() is False
    assert len(agent.aggregator.snapshot_for_flush()) == 1

    queue = events.subscribe()
    assert agent.flush() is True
    assert queue.get_nowait()["type"] == "flush"
    assert agent.aggregator.snapshot_for_flush() == []


def test_leave_flushes_growth_since_last_flush():
    surface = FakeMeetingSurface()
    settings = make_settings()
    events = EventChannel()
    agent = AutomationAgent(surface, ControlChannel(), events, settings.bot, "sess-leave-flush")
    queue = events.subscribe()

    async def scenario():
        agent.aggregator.observe("Alice", "Hi there")
        agent.flush()
        agent.aggregator.observe("Alice", "Hi there, everyone")
        await agent.leave_meeting("user_requested")
        return drain(queue)

    messages = asyncio.run(scenario())

    flushed = [s["text"] for m in of_type(messages, "flush") for s in m["data"]["segments"]]
    assert flushed == ["Hi there", "Hi there, everyone"]
    assert agent.aggregator.active("Alice") is None
    assert agent.aggregator.snapshot_for_flush() == []
