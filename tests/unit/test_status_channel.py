from __future__ import annotations

from vedit.status import Status, StatusChannel, StatusKind


def test_channel_starts_idle_and_overwrites_values() -> None:
    channel = StatusChannel()
    assert channel.value == Status.idle()

    channel.publish(Status.analyzing())
    channel.publish(Status.succeeded("Style applied"))

    assert channel.value.kind is StatusKind.SUCCEEDED
    assert channel.value.is_terminal
    assert str(channel.value) == "succeeded: Style applied"


def test_observers_run_in_order_and_survive_failures() -> None:
    channel = StatusChannel()
    seen: list[str] = []

    def broken(status: Status) -> None:
        raise RuntimeError("observer bug")

    channel.subscribe(lambda status: seen.append(f"first:{status.kind.value}"))
    channel.subscribe(broken)
    unsubscribe = channel.subscribe(lambda status: seen.append(f"last:{status.kind.value}"))

    channel.publish(Status.analyzing())
    unsubscribe()
    unsubscribe()
    channel.publish(Status.failed("boom"))

    assert seen == ["first:analyzing", "last:analyzing", "first:failed"]


def test_replay_delivers_current_value() -> None:
    channel = StatusChannel(Status.persisting())
    seen: list[Status] = []

    channel.subscribe(seen.append, replay=True)

    assert seen == [Status.persisting()]
