import unittest
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from scheduling import ManualScheduler


class TestManualScheduler(unittest.TestCase):
    def setUp(self):
        self.scheduler = ManualScheduler()
        self.calls = []

    def test_runs_in_due_order(self):
        self.scheduler.call_later(300, lambda: self.calls.append("c"))
        self.scheduler.call_later(100, lambda: self.calls.append("a"))
        self.scheduler.call_later(100, lambda: self.calls.append("b"))
        self.scheduler.advance(99)
        self.assertEqual(self.calls, [])
        self.scheduler.advance(201)
        self.assertEqual(self.calls, ["a", "b", "c"])
        self.assertEqual(self.scheduler.now_ms, 300)

    def test_cancel(self):
        call = self.scheduler.call_later(10, lambda: self.calls.append("x"))
        call.cancel()
        self.scheduler.advance(50)
        self.assertEqual(self.calls, [])
        self.assertFalse(call.active)
        self.assertEqual(self.scheduler.pending_count, 0)

    def test_calls_scheduled_from_callbacks(self):
        def first():
            self.calls.append(("first", self.scheduler.now_ms))
            self.scheduler.call_later(
                5, lambda: self.calls.append(("second", self.scheduler.now_ms))
            )

        self.scheduler.call_later(10, first)
        self.scheduler.advance(20)
        self.assertEqual(self.calls, [("first", 10), ("second", 15)])

    def test_run_all(self):
        self.scheduler.call_later(4500, lambda: self.calls.append("late"))
        self.scheduler.run_all()
        self.assertEqual(self.calls, ["late"])
        self.assertEqual(self.scheduler.now_ms, 4500)


if __name__ == "__main__":
    unittest.main()
