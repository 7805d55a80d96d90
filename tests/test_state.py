from roster.state import StateStream


def test_subscribe_replays_current_value_and_unsubscribes():
    stream = StateStream(1, name="n")
    seen = []
    unsubscribe = stream.subscribe(seen.append)
    stream.set(2)
    unsubscribe()
    stream.set(3)
    assert seen == [1, 2]
    assert stream.value == 3


def test_failing_subscriber_does_not_block_others():
    stream = StateStream("a")

    def broken(_):
        raise RuntimeError("boom")

    seen = []
    stream.subscribe(broken, replay=False)
    stream.subscribe(seen.append, replay=False)
    stream.set("b")
    assert seen == ["b"]


def test_close_drops_subscribers_and_ignores_sets():
    stream = StateStream(0)
    seen = []
    stream.subscribe(seen.append)
    stream.close()
    stream.set(5)
    assert seen == [0]
    assert stream.value == 0
