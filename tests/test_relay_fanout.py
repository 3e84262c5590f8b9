import asyncio
import json

from src.relay.server import RelayServer
from tests.conftest import make_peer


def decoded(peer):
    return [json.loads(text) for text in peer.ws.sent]


def test_broadcast_reaches_everyone_but_the_sender():
    async def scenario():
        relay = RelayServer()
        peers = [make_peer() for _ in range(5)]
        for peer in peers:
            await relay.on_connect(peer)

        sender = peers[2]
        delivered = await relay.on_message(sender, '{"type": "seek", "time": 12.5}')
        assert delivered == 4
        assert sender.ws.sent == []
        for peer in peers:
            if peer is not sender:
                assert decoded(peer) == [{"type": "seek", "time": 12.5}]

    asyncio.run(scenario())


def test_lone_peer_gets_no_echo():
    async def scenario():
        relay = RelayServer()
        alone = make_peer()
        await relay.on_connect(alone)
        assert await relay.on_message(alone, '{"type": "play"}') == 0
        assert alone.ws.sent == []

    asyncio.run(scenario())


def test_malformed_message_is_dropped_and_sender_stays_registered():
    async def scenario():
        relay = RelayServer()
        a, b = make_peer(), make_peer()
        await relay.on_connect(a)
        await relay.on_connect(b)

        assert await relay.on_message(a, "{not json") == 0
        assert await relay.on_message(a, '{"type": "stop"}') == 0
        assert b.ws.sent == []
        assert a in relay.registry
        assert a.alive

        assert await relay.on_message(a, '{"type": "pause"}') == 1
        assert decoded(b) == [{"type": "pause"}]

    asyncio.run(scenario())


def test_deeply_nested_message_is_dropped_without_dropping_the_sender():
    async def scenario():
        relay = RelayServer()
        a, b = make_peer(), make_peer()
        await relay.on_connect(a)
        await relay.on_connect(b)

        deep = '{"type": "play", "x": ' + "[" * 300 + "]" * 300 + "}"
        assert await relay.on_message(a, deep) == 0
        assert b.ws.sent == []
        assert a in relay.registry
        assert a.alive

        assert await relay.on_message(a, '{"type": "seek", "time": 1}') == 1
        assert decoded(b) == [{"type": "seek", "time": 1}]

    asyncio.run(scenario())


def test_broken_peer_does_not_stop_delivery_to_others():
    async def scenario():
        relay = RelayServer()
        sender = make_peer()
        broken = make_peer(fail=True)
        healthy = [make_peer() for _ in range(3)]
        for peer in [sender, broken, *healthy]:
            await relay.on_connect(peer)

        delivered = await relay.on_message(sender, '{"type": "play", "url": "x", "time": 0}')
        assert delivered == 3
        for peer in healthy:
            assert decoded(peer) == [{"type": "play", "url": "x", "time": 0}]
        assert broken.alive is False

        # the dead peer is skipped until its connection goes away
        assert await relay.on_message(sender, '{"type": "pause"}') == 3
        await relay.on_disconnect(broken)
        assert broken not in relay.registry

    asyncio.run(scenario())


def test_slow_peer_times_out_without_stalling_the_rest():
    async def scenario():
        relay = RelayServer(send_timeout=0.05)
        sender = make_peer()
        slow = make_peer(delay=5.0)
        fast = make_peer()
        for peer in (sender, slow, fast):
            await relay.on_connect(peer)

        delivered = await asyncio.wait_for(
            relay.on_message(sender, '{"type": "pause"}'), timeout=2.0
        )
        assert delivered == 1
        assert decoded(fast) == [{"type": "pause"}]
        assert slow.ws.sent == []
        assert slow.alive is False

    asyncio.run(scenario())


def test_disconnected_peer_no_longer_receives():
    async def scenario():
        relay = RelayServer()
        a, b, c = make_peer(), make_peer(), make_peer()
        for peer in (a, b, c):
            await relay.on_connect(peer)

        await relay.on_message(a, '{"type": "play", "url": "x", "time": 0}')
        await relay.on_disconnect(b)
        await relay.on_disconnect(b)
        await relay.on_message(a, '{"type": "pause"}')

        assert decoded(b) == [{"type": "play", "url": "x", "time": 0}]
        assert decoded(c) == [
            {"type": "play", "url": "x", "time": 0},
            {"type": "pause"},
        ]
        assert set(relay.registry.peer_ids()) == {a.peer_id, c.peer_id}

    asyncio.run(scenario())


def test_concurrent_connects_disconnects_and_broadcasts():
    async def scenario():
        relay = RelayServer()
        peers = [make_peer(delay=0.001 * (i % 3)) for i in range(40)]
        await asyncio.gather(*(relay.on_connect(p) for p in peers))
        assert len(relay.registry) == 40

        leaving = peers[::2]
        staying = peers[1::2]
        sender = staying[0]
        late = [make_peer() for _ in range(10)]

        await asyncio.gather(
            *(relay.on_disconnect(p) for p in leaving),
            relay.on_message(sender, '{"type": "seek", "time": 7}'),
            *(relay.on_connect(p) for p in staying),
            *(relay.on_connect(p) for p in late),
        )

        expected = {p.peer_id for p in staying + late}
        assert set(relay.registry.peer_ids()) == expected
        assert len(relay.registry) == len(expected)
        for peer in staying[1:]:
            assert decoded(peer) == [{"type": "seek", "time": 7}]
        for peer in leaving + late:
            assert len(peer.ws.sent) <= 1

    asyncio.run(scenario())
