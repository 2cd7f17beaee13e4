import unittest

from storage_router.errors import ProbeError
from storage_router.prober import UNKNOWN_SIZE, format_size, probe_size, to_megabytes
from storage_router.tests.fakes import FakeHandle


class ProbeSizeTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_reported_size(self):
        self.assertEqual(await probe_size(FakeHandle("db0", 4096)), 4096)

    async def test_empty_store_is_zero(self):
        self.assertEqual(await probe_size(FakeHandle("db0", 0)), 0)

    async def test_failure_is_unknown_not_zero(self):
        handle = FakeHandle("db0")
        handle.probe_error = ProbeError("boom")
        with self.assertLogs("storage_router.prober", level="WARNING"):
            self.assertEqual(await probe_size(handle), UNKNOWN_SIZE)

    async def test_unexpected_exception_is_swallowed(self):
        handle = FakeHandle("db0")
        handle.probe_error = RuntimeError("driver exploded")
        with self.assertLogs("storage_router.prober", level="WARNING"):
            self.assertEqual(await probe_size(handle), -1)

    async def test_negative_result_becomes_unknown(self):
        with self.assertLogs("storage_router.prober", level="WARNING"):
            self.assertEqual(await probe_size(FakeHandle("db0", -42)), -1)


class FormatSizeTests(unittest.TestCase):
    def test_format(self):
        self.assertEqual(format_size(-1), "unknown")
        self.assertEqual(format_size(3 * 1024 * 1024), "3.00MB")
        self.assertIsNone(to_megabytes(-1))
        self.assertEqual(to_megabytes(0), 0.0)


if __name__ == "__main__":
    unittest.main()
