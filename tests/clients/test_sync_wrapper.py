"""Tests for the blocking facade: AsyncRunner and SyncClient."""

import asyncio
import threading
import unittest

import httpx

from filetransfer.async_runner import AsyncRunner
from filetransfer.clients.sync_wrapper import SyncClient, SyncReadStream, SyncWriteStream
from filetransfer.clients.webdavclient import WebDavClient
from filetransfer.exceptions import NotConnectedError, WebDavError
from tests.fixtures.test_data import FakeDavServer, TestDataFixtures

CONFIG = {"base_url": "http://dav.example.com/files", "username": "foo", "password": "bar"}


class TestAsyncRunner(unittest.TestCase):
    """Lifecycle of the background loop thread."""

    def test_loop_running_once_started(self) -> None:
        runner = AsyncRunner()
        self.assertFalse(runner.is_running)

        runner.start()
        try:
            self.assertTrue(runner.is_running)
            self.assertTrue(runner.loop.is_running())
        finally:
            runner.stop()

        self.assertFalse(runner.is_running)
        with self.assertRaises(RuntimeError):
            runner.loop

    def test_calls_share_one_loop(self) -> None:
        async def current_loop() -> asyncio.AbstractEventLoop:
            return asyncio.get_running_loop()

        with AsyncRunner() as runner:
            first = runner.run_sync(current_loop())
            second = runner.run(current_loop()).result(timeout=5)

            self.assertIs(first, second)
            self.assertIs(first, runner.loop)

    def test_errors_reach_the_caller(self) -> None:
        async def refuse() -> None:
            raise ConnectionRefusedError("Fake connection error")

        with AsyncRunner() as runner:
            with self.assertRaisesRegex(ConnectionRefusedError, "Fake connection error"):
                runner.run_sync(refuse())

    def test_timeout_cancels_the_coroutine(self) -> None:
        cancelled = threading.Event()

        async def stalled() -> None:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with AsyncRunner() as runner:
            with self.assertRaises(TimeoutError):
                runner.run_sync(stalled(), timeout=0.05)
            self.assertTrue(cancelled.wait(timeout=5))

    def test_stop_cancels_pending_work(self) -> None:
        """Work left on the loop, like an unclosed upload, is cancelled on stop."""
        started = threading.Event()
        cancelled = threading.Event()

        async def upload() -> None:
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        runner = AsyncRunner()
        runner.start()
        runner.run(upload())
        self.assertTrue(started.wait(timeout=5))

        runner.stop()
        runner.stop()

        self.assertTrue(cancelled.is_set())
        self.assertFalse(runner.is_running)

    def test_restart_after_stop(self) -> None:
        async def answer() -> int:
            return 42

        runner = AsyncRunner()
        with runner:
            pass
        with runner:
            self.assertEqual(runner.run_sync(answer()), 42)

    def test_not_started(self) -> None:
        async def answer() -> int:
            return 42

        coro = answer()
        with self.assertRaises(RuntimeError):
            AsyncRunner().run(coro)
        # Closed without running, so no "never awaited" warning
        self.assertIsNone(coro.cr_frame)

    def test_double_start(self) -> None:
        with AsyncRunner() as runner:
            with self.assertRaises(RuntimeError):
                runner.start()


class TestSyncClient(unittest.TestCase):
    """SyncClient driving a WebDavClient over a mock transport."""

    def make_client(self, server: FakeDavServer, runner=None) -> SyncClient:
        return SyncClient(WebDavClient(CONFIG, transport=server.transport()), runner)

    def test_connect_and_disconnect(self) -> None:
        server = FakeDavServer()
        client = self.make_client(server)

        client.connect()
        self.assertTrue(client.is_connected())
        self.assertEqual(client.name(), "dav.example.com")

        client.disconnect()
        client.disconnect()
        self.assertFalse(client.is_connected())
        self.assertEqual(server.methods(), ["OPTIONS"])

    def test_context_manager(self) -> None:
        body = TestDataFixtures.multistatus(["/files/", "/files/fileA.txt", "/files/dir/"])
        server = FakeDavServer({"PROPFIND": lambda request: httpx.Response(207, text=body)})

        with self.make_client(server) as client:
            self.assertEqual(client.readdir("/"), ["fileA.txt", "dir"])

        self.assertFalse(client.is_connected())

    def test_not_connected(self) -> None:
        server = FakeDavServer()
        client = self.make_client(server)

        with self.assertRaisesRegex(NotConnectedError, "WebDAV client not connected"):
            client.mkdir("/path/to/dir")
        with self.assertRaisesRegex(NotConnectedError, "WebDAV client not connected"):
            client.create_read_stream("/path/to/file")

        self.assertEqual(server.requests, [])

    def test_connect_error_stops_owned_runner(self) -> None:
        client = self.make_client(FakeDavServer({"OPTIONS": lambda request: httpx.Response(401)}))

        with self.assertRaises(WebDavError) as context:
            client.connect()

        self.assertEqual(context.exception.status_code, 401)
        self.assertFalse(client.is_connected())
        self.assertFalse(client._runner.is_running)

    def test_shared_runner_keeps_running(self) -> None:
        with AsyncRunner() as runner:
            first = self.make_client(FakeDavServer(), runner)
            second = self.make_client(FakeDavServer(), runner)

            first.connect()
            second.connect()
            first.disconnect()

            self.assertTrue(runner.is_running)
            self.assertTrue(second.is_connected())
            second.disconnect()

    def test_operations(self) -> None:
        server = FakeDavServer({
            "MKCOL": lambda request: httpx.Response(201),
            "DELETE": lambda request: httpx.Response(204),
        })

        with self.make_client(server) as client:
            client.mkdir("/path/to/dir")
            client.unlink("/path/to/dir/file.txt")
            client.rmdir("/path/to/dir")

        self.assertEqual(server.methods(), ["OPTIONS", "MKCOL", "DELETE", "DELETE"])
        self.assertEqual(server.requests[-1].url.path, "/files/path/to/dir/")

    def test_read_stream(self) -> None:
        server = FakeDavServer({"GET": lambda request: httpx.Response(200, content=b"x" * 100000)})

        with self.make_client(server) as client:
            stream = client.create_read_stream("/big.bin")
            self.assertIsInstance(stream, SyncReadStream)
            with stream:
                content = stream.read()

        self.assertEqual(content, b"x" * 100000)

    def test_write_stream(self) -> None:
        server = FakeDavServer({"PUT": lambda request: httpx.Response(201)})

        with self.make_client(server) as client:
            stream = client.create_write_stream("/hello.txt")
            self.assertIsInstance(stream, SyncWriteStream)
            with stream:
                stream.write(b"Hello, ")
                stream.write(b"friend.")

        self.assertEqual(server.last("PUT").content, b"Hello, friend.")

    def test_write_stream_aborted(self) -> None:
        """A failure on the writing side cancels the upload."""
        server = FakeDavServer({"PUT": lambda request: httpx.Response(201)})

        with self.make_client(server) as client:
            with self.assertRaises(RuntimeError):
                with client.create_write_stream("/hello.txt") as stream:
                    stream.write(b"Hello, ")
                    raise RuntimeError("local read failed")

        self.assertNotIn("PUT", server.methods())


if __name__ == "__main__":
    unittest.main()
