"""Tests for user notices."""

from highlightsync.client.notices import MAX_MESSAGE_LENGTH, Notice, NoticeLevel, Notifier


class TestNotifier:
    """Tests for Notifier."""

    def test_listeners_receive_notices(self) -> None:
        notifier = Notifier()
        received: list[Notice] = []
        notifier.subscribe(received.append)

        notifier.success("Sync completed")
        notifier.error("Sync failed")

        assert [(n.message, n.level) for n in received] == [
            ("Sync completed", NoticeLevel.SUCCESS),
            ("Sync failed", NoticeLevel.ERROR),
        ]

    def test_repeated_progress_collapsed(self) -> None:
        notifier = Notifier()
        for _ in range(3):
            notifier.progress("Building export...")
        notifier.progress("Saving files...")
        notifier.progress("Building export...")

        assert [n.message for n in notifier.history] == [
            "Building export...",
            "Saving files...",
            "Building export...",
        ]

    def test_long_messages_truncated(self) -> None:
        notifier = Notifier()
        notifier.error("x" * 500)
        assert len(notifier.history[0].message) == MAX_MESSAGE_LENGTH

    def test_failing_listener_does_not_stop_others(self) -> None:
        notifier = Notifier()
        received: list[Notice] = []

        def broken(notice: Notice) -> None:
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)
        notifier.notify("hello")

        assert [n.message for n in received] == ["hello"]

    def test_history_bounded(self) -> None:
        notifier = Notifier()
        for i in range(60):
            notifier.notify(f"notice {i}")
        assert len(notifier.history) == 50
        assert notifier.history[-1].message == "notice 59"
