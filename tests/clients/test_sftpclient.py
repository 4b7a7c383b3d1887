"""Tests for SftpClient class."""

import asyncio
import os
import shutil
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

import asyncssh

from filetransfer.clients.sftpclient import SftpClient
from filetransfer.exceptions import NotAFileError, NotConnectedError
from filetransfer.streams import ReadStream, WriteStream
from tests.fixtures.test_data import FakeRemoteFile, FakeSftpStore, SftpName, TestDataFixtures

CONFIG = {"host": "localhost", "port": 2222, "username": "foo", "password": "bar"}


class SftpTestCase(unittest.TestCase):
    def setUp(self):
        self.conn, self.sftp = TestDataFixtures.create_ssh_mocks()
        patcher = patch("asyncssh.connect", new=AsyncMock(return_value=self.conn))
        self.mock_connect = patcher.start()
        self.addCleanup(patcher.stop)

    def run_connected(self, operation):
        """Connect a client, then run ``operation(client)`` on the same loop."""

        async def run_test():
            client = SftpClient(CONFIG)
            await client.connect()
            return await operation(client)

        return asyncio.run(run_test())


class TestSftpClientConnection(SftpTestCase):
    """Connection lifecycle of SftpClient."""

    def test_connect(self):
        """connect() opens the SSH transport, then the SFTP subsystem."""
        client = SftpClient(CONFIG)
        asyncio.run(client.connect())

        self.assertTrue(client.is_connected())
        self.mock_connect.assert_awaited_once_with(
            host="localhost",
            port=2222,
            known_hosts=None,
            username="foo",
            password="bar",
        )
        self.conn.start_sftp_client.assert_awaited_once()

    def test_connect_credential_variants(self):
        variants = [
            {"user": "elliot", "pass": "fsociety"},
            {"user": "elliot", "password": "fsociety"},
            {"username": "elliot", "pass": "fsociety"},
            {"username": "elliot", "password": "fsociety"},
        ]

        for credentials in variants:
            self.mock_connect.reset_mock()
            asyncio.run(SftpClient({"host": "localhost", **credentials}).connect())

            kwargs = self.mock_connect.await_args.kwargs
            self.assertEqual(kwargs["username"], "elliot")
            self.assertEqual(kwargs["password"], "fsociety")

    def test_connect_with_key(self):
        asyncio.run(SftpClient({"host": "localhost", "private_key": "/keys/id_ed25519"}).connect())

        kwargs = self.mock_connect.await_args.kwargs
        self.assertEqual(kwargs["client_keys"], ["/keys/id_ed25519"])
        self.assertNotIn("password", kwargs)

    def test_connect_transport_error(self):
        """An SSH error is raised unchanged; nothing else is attempted."""
        error = asyncssh.PermissionDenied("Fake SSH connection error")
        self.mock_connect.side_effect = error

        client = SftpClient(CONFIG)
        with self.assertRaises(asyncssh.PermissionDenied) as context:
            asyncio.run(client.connect())

        self.assertIs(context.exception, error)
        self.assertFalse(client.is_connected())
        self.conn.start_sftp_client.assert_not_awaited()

    def test_connect_subsystem_error(self):
        """A failing SFTP subsystem closes the SSH transport exactly once."""
        error = asyncssh.ChannelOpenError(2, "Fake SFTP error")
        self.conn.start_sftp_client.side_effect = error

        client = SftpClient(CONFIG)
        with self.assertRaises(asyncssh.ChannelOpenError) as context:
            asyncio.run(client.connect())

        self.assertIs(context.exception, error)
        self.assertFalse(client.is_connected())
        self.conn.close.assert_called_once()
        self.conn.wait_closed.assert_awaited_once()

    def test_disconnect(self):
        """disconnect() closes the transport once, and is a no-op afterwards."""

        async def operation(client):
            await client.disconnect()
            await client.disconnect()
            return client

        client = self.run_connected(operation)

        self.assertFalse(client.is_connected())
        self.sftp.exit.assert_called_once()
        self.conn.close.assert_called_once()

    def test_disconnect_never_connected(self):
        asyncio.run(SftpClient(CONFIG).disconnect())
        self.conn.close.assert_not_called()

    def test_supports_streams(self):
        self.assertTrue(SftpClient(CONFIG).supports_streams())


class TestSftpClientNotConnected(SftpTestCase):
    """Every operation fails on a client that never connected."""

    def test_operations_fail(self):
        client = SftpClient(CONFIG)
        operations = [
            client.get("/remote", "/local"),
            client.put("/local", "/remote"),
            client.mkdir("/path/to/directory", "700"),
            client.rmdir("/path/to/directory"),
            client.readdir("/path/to/directory"),
            client.unlink("/path/to/file"),
        ]

        for operation in operations:
            with self.assertRaises(NotConnectedError) as context:
                asyncio.run(operation)
            self.assertEqual(str(context.exception), "SFTP client not connected")

        self.mock_connect.assert_not_awaited()

    def test_streams_fail_synchronously(self):
        client = SftpClient(CONFIG)
        with self.assertRaisesRegex(NotConnectedError, "SFTP client not connected"):
            client.create_read_stream("/path/to/file")
        with self.assertRaisesRegex(NotConnectedError, "SFTP client not connected"):
            client.create_write_stream("/path/to/file")


class TestSftpClientStreams(SftpTestCase):
    """Stream constructors of a connected SftpClient."""

    def test_read_stream_strips_handle(self):
        """The reserved ``handle`` option never reaches the subsystem."""
        self.sftp.open.return_value = FakeRemoteFile(b"Hello, friend.")
        options = {"handle": 5, "test": True}

        async def operation(client):
            stream = client.create_read_stream("/path/to/file", options)
            self.assertIsInstance(stream, ReadStream)
            return await stream.read()

        content = self.run_connected(operation)

        self.assertEqual(content, b"Hello, friend.")
        self.sftp.open.assert_awaited_once_with("/path/to/file", "rb", test=True)
        self.assertEqual(options, {"handle": 5, "test": True})

    def test_read_stream_chunks(self):
        remote_file = FakeRemoteFile(b"x" * 150000)
        self.sftp.open.return_value = remote_file

        async def operation(client):
            async with client.create_read_stream("/big") as stream:
                return [len(chunk) async for chunk in stream]

        sizes = self.run_connected(operation)

        self.assertEqual(sizes, [65536, 65536, 18928])
        self.assertTrue(remote_file.closed)

    def test_write_stream_strips_handle(self):
        remote_file = FakeRemoteFile()
        self.sftp.open.return_value = remote_file

        async def operation(client):
            stream = client.create_write_stream("/path/to/file", {"handle": 5, "test": True})
            self.assertIsInstance(stream, WriteStream)
            async with stream:
                await stream.write(b"Hello, ")
                await stream.write(b"friend.")

        self.run_connected(operation)

        self.sftp.open.assert_awaited_once_with("/path/to/file", "wb", test=True)
        self.assertEqual(b"".join(remote_file.written), b"Hello, friend.")
        self.assertTrue(remote_file.closed)

    def test_stream_construction_does_no_io(self):
        async def operation(client):
            client.create_read_stream("/path/to/file")
            client.create_write_stream("/path/to/file")

        self.run_connected(operation)
        self.sftp.open.assert_not_awaited()


class TestSftpClientOperations(SftpTestCase):
    """Operations of a connected SftpClient."""

    def setUp(self):
        super().setUp()
        self.temp_dir = TestDataFixtures.create_temp_directory_with_files()

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_get(self):
        async def operation(client):
            await client.get("/remote/file.txt", "/local/file.txt")

        self.run_connected(operation)
        self.sftp.get.assert_awaited_once_with("/remote/file.txt", "/local/file.txt")

    def test_get_error(self):
        error = asyncssh.SFTPNoSuchFile("No such file")
        self.sftp.get.side_effect = error

        async def operation(client):
            with self.assertRaises(asyncssh.SFTPNoSuchFile) as context:
                await client.get("/remote/missing", "/local/file.txt")
            self.assertIs(context.exception, error)

        self.run_connected(operation)

    def test_put(self):
        local = Path(self.temp_dir) / "test_file.txt"

        async def operation(client):
            await client.put(local, "/remote/file.txt", {"preserve": True})

        self.run_connected(operation)
        self.sftp.put.assert_awaited_once_with(local, "/remote/file.txt", preserve=True)

    def test_put_directory(self):
        local = Path(self.temp_dir) / "subdir"

        async def operation(client):
            with self.assertRaises(NotAFileError):
                await client.put(local, "/remote")

        self.run_connected(operation)
        self.sftp.put.assert_not_awaited()

    def test_put_get_round_trip(self):
        """A file uploaded then downloaded comes back byte-identical."""
        store = FakeSftpStore()
        store.install(self.sftp)
        local = Path(self.temp_dir) / "binary_file.bin"
        copy = Path(self.temp_dir) / "copy.bin"

        async def operation(client):
            await client.put(local, "/path/to/file.bin")
            await client.get("/path/to/file.bin", copy)

        self.run_connected(operation)

        self.assertEqual(copy.read_bytes(), local.read_bytes())
        self.assertEqual(list(store.files), ["/path/to/file.bin"])

    def test_mkdir_mode_string(self):
        """A raw mode is normalized into the directory attributes."""

        async def operation(client):
            await client.mkdir("/path/to/dir/B", "700")

        self.run_connected(operation)

        path, attrs = self.sftp.mkdir.await_args.args
        self.assertEqual(path, "/path/to/dir/B")
        self.assertEqual(attrs.permissions, 0o700)

    def test_mkdir_options(self):
        async def operation(client):
            await client.mkdir("/path/to/dir/C", {"mode": 0o750})

        self.run_connected(operation)

        _, attrs = self.sftp.mkdir.await_args.args
        self.assertEqual(attrs.permissions, 0o750)

    def test_mkdir_default(self):
        async def operation(client):
            await client.mkdir("/path/to/dir/D")

        self.run_connected(operation)

        _, attrs = self.sftp.mkdir.await_args.args
        self.assertIsNone(attrs.permissions)

    def test_readdir(self):
        self.sftp.readdir.return_value = [
            SftpName("."),
            SftpName(".."),
            SftpName("fileA.txt"),
            SftpName("fileB.js"),
            SftpName("fileC.txt"),
        ]

        async def operation(client):
            return await client.readdir("/path/to/dir")

        names = self.run_connected(operation)

        self.assertEqual(names, ["fileA.txt", "fileB.js", "fileC.txt"])
        self.sftp.readdir.assert_awaited_once_with("/path/to/dir")

    def test_rmdir(self):
        async def operation(client):
            await client.rmdir("/path/to/dir")

        self.run_connected(operation)
        self.sftp.rmdir.assert_awaited_once_with("/path/to/dir")

    def test_unlink(self):
        async def operation(client):
            await client.unlink("/path/to/file")

        self.run_connected(operation)
        self.sftp.remove.assert_awaited_once_with("/path/to/file")


if __name__ == "__main__":
    unittest.main()
