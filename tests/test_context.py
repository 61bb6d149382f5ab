"""Tests for fscopy/context.py."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from fscopy.context import Context
from fscopy.errors import CancellationError, ContextCanceled, DeadlineExceeded


class TestCancel:
    def test_background_is_live(self) -> None:
        ctx = Context.background()
        assert not ctx.done
        assert ctx.error is None
        ctx.raise_if_done()

    def test_cancel_sets_error(self) -> None:
        ctx = Context.background().with_cancel()
        ctx.cancel()
        assert ctx.done
        assert isinstance(ctx.error, ContextCanceled)
        with pytest.raises(ContextCanceled, match="context canceled"):
            ctx.raise_if_done()

    def test_first_cancel_wins(self) -> None:
        ctx = Context.background().with_cancel()
        ctx.cancel(DeadlineExceeded())
        ctx.cancel()
        assert isinstance(ctx.error, DeadlineExceeded)

    def test_parent_cancels_child(self) -> None:
        parent = Context.background().with_cancel()
        child = parent.with_cancel()
        parent.cancel()
        assert child.done

    def test_child_does_not_cancel_parent(self) -> None:
        parent = Context.background().with_cancel()
        child = parent.with_cancel()
        child.cancel()
        assert not parent.done

    def test_closed_child_is_detached(self) -> None:
        parent = Context.background().with_cancel()
        child = parent.with_cancel()
        child.close()
        parent.cancel()
        assert not child.done


class TestCallbacks:
    def test_callback_runs_once(self) -> None:
        ctx = Context.background().with_cancel()
        callback = MagicMock()
        ctx.on_done(callback)
        ctx.cancel()
        ctx.cancel()
        callback.assert_called_once()
        assert isinstance(callback.call_args[0][0], ContextCanceled)

    def test_callback_on_done_context_runs_immediately(self) -> None:
        ctx = Context.background().with_cancel()
        ctx.cancel()
        callback = MagicMock()
        ctx.on_done(callback)
        callback.assert_called_once_with(ctx.error)

    def test_unregister(self) -> None:
        ctx = Context.background().with_cancel()
        callback = MagicMock()
        unregister = ctx.on_done(callback)
        unregister()
        ctx.cancel()
        callback.assert_not_called()

    def test_failing_callback_does_not_stop_others(self) -> None:
        ctx = Context.background().with_cancel()
        second = MagicMock()
        ctx.on_done(MagicMock(side_effect=RuntimeError("boom")))
        ctx.on_done(second)
        ctx.cancel()
        second.assert_called_once()


class TestDeadline:
    def test_timeout_expires(self) -> None:
        with Context.background().with_timeout(0.05) as ctx:
            assert ctx.wait(5)
            assert isinstance(ctx.error, DeadlineExceeded)
            assert isinstance(ctx.error, CancellationError)

    def test_non_positive_timeout_is_already_done(self) -> None:
        ctx = Context.background().with_timeout(0)
        assert ctx.done
        assert isinstance(ctx.error, DeadlineExceeded)

    def test_close_stops_timer(self) -> None:
        ctx = Context.background().with_timeout(0.05)
        ctx.close()
        assert not ctx.wait(0.2)

    def test_wait_is_woken_by_cancel(self) -> None:
        ctx = Context.background().with_cancel()
        threading.Timer(0.05, ctx.cancel).start()
        assert ctx.wait(5)
