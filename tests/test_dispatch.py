import asyncio

from moonbot.dispatch import Event, EventDispatcher


def test_dispatcher_runs_events_in_order_and_survives_failures():
    dispatcher = EventDispatcher()
    seen = []

    async def on_join(member):
        seen.append(("join", member))

    async def on_broken():
        raise RuntimeError("handler bug")

    dispatcher.register("join", on_join)
    dispatcher.register("broken", on_broken)

    async def scenario():
        worker = asyncio.create_task(dispatcher.run())
        dispatcher.submit("join", "alice")
        dispatcher.submit("broken")
        dispatcher.submit("unhandled", 1)
        dispatcher.submit("join", "bob")
        await dispatcher.queue.join()
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    asyncio.run(scenario())
    assert seen == [("join", "alice"), ("join", "bob")]


def test_dispatch_reports_handler_outcome():
    dispatcher = EventDispatcher()

    async def ok():
        return None

    async def broken():
        raise ValueError("nope")

    dispatcher.register("ok", ok)
    dispatcher.register("broken", broken)

    assert asyncio.run(dispatcher.dispatch(Event("ok"))) is True
    assert asyncio.run(dispatcher.dispatch(Event("broken"))) is False
    assert asyncio.run(dispatcher.dispatch(Event("missing"))) is False
