"""
Tests for the notification queue.
"""

from hconnect.notify import ERROR, SUCCESS, Notifier


def test_queued_until_drained():
    notifier = Notifier()
    notifier.success("Saved")
    notifier.error("Nope")
    assert notifier.messages(ERROR) == ["Nope"]

    drained = notifier.drain()
    assert [(n.level, n.message) for n in drained] == [(SUCCESS, "Saved"), (ERROR, "Nope")]
    assert [n.id for n in drained] == [1, 2]
    assert notifier.items == []


def test_callback_consumes_notifications():
    shown = []
    notifier = Notifier(on_notify=shown.append)
    for i in range(3):
        notifier.success(f"done {i}")

    assert [n.message for n in shown] == ["done 0", "done 1", "done 2"]
    assert notifier.items == []
