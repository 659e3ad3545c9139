import asyncio

from stockbot.core.locks import KeyedLock


def test_same_key_is_serialized_and_released():
    locks = KeyedLock()
    order = []

    async def worker(name):
        async with locks.hold(("shop-1", "Milk")):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    async def run():
        await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(run())

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


def test_different_keys_do_not_block():
    locks = KeyedLock()
    order = []

    async def worker(key):
        async with locks.hold(key):
            order.append(f"{key}-in")
            await asyncio.sleep(0.01)
            order.append(f"{key}-out")

    async def run():
        await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(run())

    assert order[:2] == ["a-in", "b-in"]
