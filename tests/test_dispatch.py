"""
Dispatch context and deadline timer tests for httpweave
"""

import threading
import time

import pytest

from httpweave import DispatchContext
from httpweave._timer import DeadlineTimer


class TestDispatchContext:
    """Test the event loop worker thread"""

    def test_post_runs_on_dispatch_thread(self, dispatch):
        done = threading.Event()
        seen = []

        def record():
            seen.append(dispatch.in_dispatch_thread())
            done.set()

        dispatch.post(record)
        assert done.wait(2)
        assert seen == [True]
        assert not dispatch.in_dispatch_thread()

    def test_call_returns_result(self, dispatch):
        assert dispatch.call(lambda a, b: a + b, 2, 3) == 5

    def test_call_propagates_exception(self, dispatch):
        def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            dispatch.call(boom)

    def test_call_inline_on_dispatch_thread(self, dispatch):
        assert dispatch.call(lambda: dispatch.call(lambda: "nested")) == "nested"

    def test_posts_run_in_order(self, dispatch):
        order = []
        for i in range(20):
            dispatch.post(order.append, i)
        dispatch.call(lambda: None)
        assert order == list(range(20))

    def test_lazy_start(self):
        context = DispatchContext()
        assert not context.running
        context.call(lambda: None)
        assert context.running
        context.stop()
        assert not context.running

    def test_stop_is_idempotent(self):
        context = DispatchContext()
        context.start()
        context.stop()
        context.stop()
        with pytest.raises(RuntimeError):
            context.start()

    def test_stop_never_started(self):
        DispatchContext().stop()

    def test_context_manager(self):
        with DispatchContext() as context:
            assert context.running
        assert not context.running


class TestDeadlineTimer:
    """Test one-shot timers on the dispatch loop"""

    def test_fires(self, dispatch):
        fired = threading.Event()
        timer = dispatch.call(DeadlineTimer, dispatch.loop)
        dispatch.call(timer.start, 0.05, fired.set)
        assert fired.wait(2)
        assert not timer.armed

    def test_stop_prevents_callback(self, dispatch):
        fired = threading.Event()
        timer = DeadlineTimer(dispatch.loop)
        dispatch.call(timer.start, 0.1, fired.set)
        assert timer.armed
        dispatch.call(timer.stop)
        assert not fired.wait(0.3)

    def test_restart_replaces_alarm(self, dispatch):
        calls = []
        timer = DeadlineTimer(dispatch.loop)
        dispatch.call(timer.start, 0.05, lambda: calls.append("first"))
        dispatch.call(timer.start, 0.1, lambda: calls.append("second"))
        time.sleep(0.3)
        assert calls == ["second"]

    def test_stop_when_not_armed(self, dispatch):
        timer = DeadlineTimer(dispatch.loop)
        dispatch.call(timer.stop)
        dispatch.call(timer.stop)
