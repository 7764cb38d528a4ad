import asyncio
import unittest

from bucketviewer.config import ClientConfiguration
from bucketviewer.connections import ConnectionCache
from bucketviewer.errors import ConfigurationError
from bucketviewer.services import S3StorageClient
from fakes import FakeClientFactory


def make_config(endpoint="http://localhost:9000", **overrides):
    values = {"endpoint": endpoint, "access_key": "access", "secret_key": "secret"}
    values.update(overrides)
    return ClientConfiguration(**values)


class ConnectionCacheTests(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_first_requests_share_one_construction(self):
        factory = FakeClientFactory(delay=0.05)
        cache = ConnectionCache(client_factory=factory)

        first, second = await asyncio.gather(
            cache.get_or_create("conn1", make_config()),
            cache.get_or_create("conn1", make_config()),
        )

        self.assertIs(first, second)
        self.assertIsInstance(first, S3StorageClient)
        self.assertEqual(1, factory.call_count)
        self.assertEqual(["conn1"], cache.names())

    async def test_remove_during_construction_keeps_a_single_client(self):
        factory = FakeClientFactory(delay=0.2)
        cache = ConnectionCache(client_factory=factory)

        first = asyncio.ensure_future(cache.get_or_create("conn1", make_config()))
        second = asyncio.ensure_future(cache.get_or_create("conn1", make_config()))
        await asyncio.sleep(0.05)
        cache.remove("conn1")
        third = await cache.get_or_create("conn1", make_config())
        a, b = await asyncio.gather(first, second)

        self.assertIs(a, b)
        self.assertIs(a, third)
        self.assertIs(a, cache.get("conn1"))
        self.assertEqual(1, factory.call_count)

    async def test_clear_during_construction_keeps_a_single_client(self):
        factory = FakeClientFactory(delay=0.2)
        cache = ConnectionCache(client_factory=factory)

        first = asyncio.ensure_future(cache.get_or_create("conn1", make_config()))
        await asyncio.sleep(0.05)
        cache.clear()
        second = await cache.get_or_create("conn1", make_config())

        self.assertIs(await first, second)
        self.assertEqual(1, factory.call_count)

    async def test_existing_entry_is_returned_without_rebuilding(self):
        factory = FakeClientFactory()
        cache = ConnectionCache(client_factory=factory)

        first = await cache.get_or_create("conn1", make_config())
        second = await cache.get_or_create("conn1", make_config(endpoint="http://other:9000"))

        self.assertIs(first, second)
        self.assertEqual("http://localhost:9000", second.config.endpoint)
        self.assertEqual(1, factory.call_count)

    async def test_names_are_independent(self):
        factory = FakeClientFactory()
        cache = ConnectionCache(client_factory=factory)

        first = await cache.get_or_create("conn1", make_config())
        second = await cache.get_or_create("conn2", make_config())

        self.assertIsNot(first, second)
        self.assertEqual(2, len(cache))
        self.assertEqual(2, factory.call_count)

    async def test_failed_construction_leaves_no_entry(self):
        factory = FakeClientFactory(error=ValueError("Invalid endpoint: nope"))
        cache = ConnectionCache(client_factory=factory)

        with self.assertRaises(ConfigurationError):
            await cache.get_or_create("conn1", make_config())

        self.assertNotIn("conn1", cache)
        factory.error = None
        client = await cache.get_or_create("conn1", make_config())
        self.assertIs(client, cache.get("conn1"))

    async def test_remove_evicts_entry_and_ignores_unknown_names(self):
        factory = FakeClientFactory()
        cache = ConnectionCache(client_factory=factory)
        first = await cache.get_or_create("conn1", make_config())

        cache.remove("conn1")
        cache.remove("never-connected")
        second = await cache.get_or_create("conn1", make_config())

        self.assertIsNot(first, second)
        self.assertEqual(2, factory.call_count)

    async def test_clear_evicts_everything(self):
        cache = ConnectionCache(client_factory=FakeClientFactory())
        await cache.get_or_create("conn1", make_config())
        await cache.get_or_create("conn2", make_config())

        cache.clear()

        self.assertEqual(0, len(cache))
        self.assertIsNone(cache.get("conn1"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
