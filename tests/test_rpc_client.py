"""Tests for the sidecar JSON-RPC client."""

import asyncio

import pytest

from questlink.rpc.client import ClientInfo, ClientState, SidecarClient
from questlink.rpc.errors import (
    CallCancelledError,
    CallTimeoutError,
    ClientClosedError,
    ConnectionLostError,
    RemoteError,
    SidecarError,
    SpawnError,
    WriteError,
)


@pytest.fixture
async def client(sidecar_command):
    client = SidecarClient("fake", sidecar_command, request_timeout=5.0)
    await client.connect()
    yield client
    await client.close()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_handshake(self, sidecar_command):
        client = SidecarClient(
            "fake",
            sidecar_command,
            client_info=ClientInfo(name="quest-keeper-client", version="0.1.0"),
        )
        try:
            info = await client.initialize()

            assert client.state is ClientState.INITIALIZED
            assert info["serverInfo"]["name"] == "fake-sidecar"
            assert info["protocolVersion"] == "2024-11-05"
            assert info["echoClientInfo"] == {
                "name": "quest-keeper-client",
                "version": "0.1.0",
            }
            assert client.server_info == info
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, client):
        first = await client.initialize()
        second = await client.initialize()
        assert first is second

    @pytest.mark.asyncio
    async def test_connect_missing_binary(self, tmp_path):
        client = SidecarClient("rpg-combat-engine-server", binaries_dir=tmp_path)

        with pytest.raises(SpawnError):
            await client.connect()

        assert client.state is ClientState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_resolves_binaries_dir(self, binaries_dir):
        client = SidecarClient("rpg-combat-engine-server", binaries_dir=binaries_dir)
        try:
            await client.initialize()
            assert client.state is ClientState.INITIALIZED
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_call_before_connect_raises(self, sidecar_command):
        client = SidecarClient("fake", sidecar_command)
        with pytest.raises(WriteError):
            await client.call("tools/list")

    @pytest.mark.asyncio
    async def test_close_then_reconnect(self, sidecar_command):
        client = SidecarClient("fake", sidecar_command)
        await client.initialize()
        await client.close()
        assert client.state is ClientState.DISCONNECTED

        await client.initialize()
        try:
            assert client.state is ClientState.INITIALIZED
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_failed_initialize_raises_remote_error(
        self, sidecar_command, monkeypatch
    ):
        monkeypatch.setenv("FAKE_SIDECAR_FAIL_INIT", "1")
        client = SidecarClient("fake", sidecar_command)
        try:
            with pytest.raises(RemoteError) as exc_info:
                await client.initialize()
            assert exc_info.value.code == -32603
            assert client.state is ClientState.CONNECTED
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_close_during_connect_aborts_the_spawn(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        connecting = asyncio.create_task(client.connect())
        await asyncio.sleep(0)
        assert client.state is ClientState.CONNECTING

        await client.close()

        with pytest.raises(ClientClosedError):
            await connecting
        assert client.state is ClientState.DISCONNECTED
        abandoned = fake_transport.instances[0]
        assert abandoned.spawned
        assert not abandoned.is_running

        # the client can still be brought up afterwards
        await client.connect()
        try:
            assert client.state is ClientState.CONNECTED
            assert await client.list_tools() == {"tools": [{"name": "echo"}]}
            assert len(fake_transport.instances) == 2
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_close_during_connect_terminates_child(self, sidecar_command):
        client = SidecarClient("fake", sidecar_command)
        connecting = asyncio.create_task(client.connect())
        await asyncio.sleep(0)
        transport = client._transport
        assert transport is not None

        await client.close()

        with pytest.raises(ClientClosedError):
            await connecting
        assert await asyncio.wait_for(transport.wait_closed(), timeout=5) is not None
        assert not transport.is_running
        assert client.state is ClientState.DISCONNECTED


class TestCalls:
    @pytest.mark.asyncio
    async def test_list_tools(self, client):
        result = await client.list_tools()
        assert [t["name"] for t in result["tools"]] == ["echo", "describe_battlefield"]

    @pytest.mark.asyncio
    async def test_call_tool_round_trip(self, client):
        result = await client.call_tool("echo", {"hello": "world"})
        assert result == {"content": [{"type": "text", "text": '{"hello": "world"}'}]}
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_remote_error(self, client):
        with pytest.raises(RemoteError) as exc_info:
            await client.call_tool("fail")

        assert exc_info.value.code == -32000
        assert "boom" in str(exc_info.value)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_out_of_order_responses_match_their_requests(self, client):
        slow = asyncio.create_task(
            client.call_tool("sleep", {"seconds": 0.3, "tag": "slow"})
        )
        fast = asyncio.create_task(
            client.call_tool("sleep", {"seconds": 0.0, "tag": "fast"})
        )

        done, _ = await asyncio.wait({slow, fast}, return_when=asyncio.FIRST_COMPLETED)
        assert done == {fast}

        assert (await fast)["content"][0]["text"] == "fast"
        assert (await slow)["content"][0]["text"] == "slow"
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_many_concurrent_calls(self, client):
        results = await asyncio.gather(
            *(client.call_tool("echo", {"n": n}) for n in range(20))
        )
        texts = [r["content"][0]["text"] for r in results]
        assert texts == [f'{{"n": {n}}}' for n in range(20)]

    @pytest.mark.asyncio
    async def test_noise_and_unknown_ids_are_ignored(self, client):
        result = await client.call_tool("noise")
        assert result["content"][0]["text"] == "after noise"
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_timeout_removes_pending_entry(self, client):
        with pytest.raises(CallTimeoutError) as exc_info:
            await client.call_tool("never", timeout=0.1)

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.method == "tools/call"
        assert client.pending_count == 0

        # the client keeps working after a timeout
        result = await client.call_tool("echo", {"x": 1})
        assert result["content"][0]["text"] == '{"x": 1}'

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_is_dropped(self, client):
        with pytest.raises(CallTimeoutError):
            await client.call_tool("sleep", {"seconds": 0.2}, timeout=0.05)

        await asyncio.sleep(0.4)
        assert client.pending_count == 0
        assert client.state is ClientState.CONNECTED

    @pytest.mark.asyncio
    async def test_cancel_event(self, client):
        cancel = asyncio.Event()
        call = asyncio.create_task(client.call_tool("never", cancel=cancel))
        await asyncio.sleep(0.05)
        assert client.pending_count == 1

        cancel.set()

        with pytest.raises(CallCancelledError):
            await call
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_already_set_cancel_event(self, client):
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(CallCancelledError):
            await client.call_tool("echo", cancel=cancel)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_task_cancellation_removes_pending_entry(self, client):
        call = asyncio.create_task(client.call_tool("never"))
        await asyncio.sleep(0.05)
        assert client.pending_count == 1

        call.cancel()
        with pytest.raises(asyncio.CancelledError):
            await call
        assert client.pending_count == 0


class TestProcessExit:
    @pytest.mark.asyncio
    async def test_exit_fails_all_pending_calls(self, client):
        pending = [
            asyncio.create_task(client.call_tool("never", timeout=5)) for _ in range(5)
        ]
        await asyncio.sleep(0.05)
        assert client.pending_count == 5

        with pytest.raises(ConnectionLostError) as exc_info:
            await client.call_tool("crash", {"code": 7})
        assert exc_info.value.exit_code == 7

        results = await asyncio.gather(*pending, return_exceptions=True)
        assert all(isinstance(r, ConnectionLostError) for r in results)
        assert client.pending_count == 0
        assert client.state is ClientState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_call_after_exit_fails_fast(self, client):
        with pytest.raises(ConnectionLostError):
            await client.call_tool("crash")

        with pytest.raises(WriteError):
            await client.call_tool("echo")

    @pytest.mark.asyncio
    async def test_close_fails_pending_with_client_closed(self, sidecar_command):
        client = SidecarClient("fake", sidecar_command)
        await client.connect()
        pending = asyncio.create_task(client.call_tool("never", timeout=5))
        await asyncio.sleep(0.05)

        await client.close()

        with pytest.raises(ClientClosedError):
            await pending
        assert client.pending_count == 0


class TestWithFakeTransport:
    @pytest.mark.asyncio
    async def test_each_response_resolves_at_most_once(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        await client.connect()
        transport = fake_transport.instances[0]
        transport.auto_reply = False

        call = asyncio.create_task(client.call("tools/list"))
        await asyncio.sleep(0)
        request_id = transport.sent[-1]["id"]
        assert client.has_pending(request_id)

        transport.deliver({"jsonrpc": "2.0", "id": request_id, "result": "first"})
        transport.deliver({"jsonrpc": "2.0", "id": request_id, "result": "second"})

        assert await call == "first"
        assert not client.has_pending(request_id)

    @pytest.mark.asyncio
    async def test_request_ids_are_unique(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        await client.connect()
        await asyncio.gather(*(client.call("tools/list") for _ in range(10)))

        ids = [m["id"] for m in fake_transport.instances[0].sent]
        assert len(set(ids)) == 10

    @pytest.mark.asyncio
    async def test_stale_transport_exit_is_ignored(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        await client.connect()
        old = fake_transport.instances[0]
        await client.close()
        await client.initialize()

        # replay the old transport's exit notification against the new session
        for callback in old._exit_callbacks:
            callback(9)

        assert client.state is ClientState.INITIALIZED
        result = await client.call("tools/list")
        assert result == {"tools": [{"name": "echo"}]}

    @pytest.mark.asyncio
    async def test_unknown_method_error_response(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        await client.connect()

        with pytest.raises(RemoteError) as exc_info:
            await client.call("resources/list")

        assert exc_info.value.code == -32601
        assert "resources/list" in str(exc_info.value)
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_errors_share_a_base(self, fake_transport):
        client = SidecarClient("fake", ["fake"], transport_factory=fake_transport)
        await client.connect()
        fake_transport.instances[0].auto_reply = False

        with pytest.raises(SidecarError):
            await client.call("tools/list", timeout=0.01)
