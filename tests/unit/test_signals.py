"""
Unit tests for TerminationSignal.
"""

import os
import signal
import threading

import pytest

from helloserver.core import TerminationSignal


class TestTerminationSignal:

    def test_initially_unset(self):
        termination = TerminationSignal()

        assert termination.is_set is False
        assert termination.reason is None
        assert termination.wait(timeout=0.01) is None

    def test_trigger(self):
        termination = TerminationSignal()
        termination.trigger("test")

        assert termination.is_set is True
        assert termination.wait() == "test"

    def test_first_reason_wins(self):
        termination = TerminationSignal()
        termination.trigger("SIGTERM")
        termination.trigger("SIGINT")

        assert termination.reason == "SIGTERM"

    def test_wait_wakes_on_trigger_from_other_thread(self):
        termination = TerminationSignal()
        threading.Timer(0.05, termination.trigger, args=("timer",)).start()

        assert termination.wait(timeout=5.0) == "timer"

    @pytest.mark.skipif(not hasattr(os, "kill") or os.name == "nt", reason="POSIX signals")
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    def test_real_signal(self, sig):
        termination = TerminationSignal()

        with termination:
            os.kill(os.getpid(), sig)
            assert termination.wait(timeout=5.0) == sig.name

    def test_restore_puts_back_previous_handlers(self):
        before = signal.getsignal(signal.SIGTERM)
        termination = TerminationSignal()

        termination.install()
        assert signal.getsignal(signal.SIGTERM) == termination._handle
        termination.restore()

        assert signal.getsignal(signal.SIGTERM) == before

    def test_handler_does_not_block_while_wait_holds_event_lock(self):
        termination = TerminationSignal()

        # The state of a main thread interrupted inside Event.wait() before
        # Condition.wait() has released the lock.
        with termination._event._cond:
            termination._handle(signal.SIGTERM, None)
            assert termination.is_set is False

        assert termination.wait(timeout=5.0) == "SIGTERM"
