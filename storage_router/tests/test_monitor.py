import asyncio
import os
import unittest
from unittest.mock import patch

from storage_router.monitor import MonitorLoop
from storage_router.policy import FailoverPolicy
from storage_router.state import BackendDescriptor, CapacityThresholds, RouterState
from storage_router.tests.fakes import FakeFactory, mb


class RecordingPolicy:
    def __init__(self):
        self.events: list[str] = []

    async def populate(self) -> bool:
        self.events.append("populate")
        return True

    async def tick(self) -> bool:
        self.events.append("tick")
        return True


class MonitorLoopTests(unittest.IsolatedAsyncioTestCase):
    async def test_kicks_run_before_periodic_ticks(self):
        policy = RecordingPolicy()
        monitor = MonitorLoop(
            policy, 0.02, populate_delay_seconds=0, evaluate_delay_seconds=0.005
        )

        monitor.start()
        self.assertTrue(monitor.running)
        await asyncio.sleep(0.1)
        await monitor.stop()

        self.assertEqual(policy.events[:2], ["populate", "tick"])
        self.assertGreaterEqual(policy.events.count("tick"), 3)
        self.assertFalse(monitor.running)

    async def test_stop_cancels_pending_work(self):
        policy = RecordingPolicy()
        monitor = MonitorLoop(
            policy, 60, populate_delay_seconds=60, evaluate_delay_seconds=60
        )
        monitor.start()
        await monitor.stop()
        await asyncio.sleep(0)

        self.assertEqual(policy.events, [])
        self.assertFalse(monitor.running)

    async def test_start_is_idempotent(self):
        policy = RecordingPolicy()
        monitor = MonitorLoop(
            policy, 60, populate_delay_seconds=0, evaluate_delay_seconds=60
        )
        monitor.start()
        monitor.start()
        await asyncio.sleep(0.01)
        await monitor.stop()

        self.assertEqual(policy.events, ["populate"])

    def test_rejects_non_positive_interval(self):
        with self.assertRaises(ValueError):
            MonitorLoop(RecordingPolicy(), 0)

    async def test_first_check_fails_over(self):
        patcher = patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        factory = FakeFactory({"db0": mb(500), "db1": mb(100), "db2": mb(50)})
        descriptors = [
            BackendDescriptor(index=i, connection_url=f"db{i}") for i in range(3)
        ]
        state = RouterState(descriptors, factory)
        await state.ensure_handle(state.active())
        policy = FailoverPolicy(state, CapacityThresholds.from_megabytes(450))
        monitor = MonitorLoop(
            policy, 60, populate_delay_seconds=0, evaluate_delay_seconds=0.01
        )

        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        self.assertEqual(state.active_index, 1)


if __name__ == "__main__":
    unittest.main()
