"""
Stream Client Tests
===================

Connection lifecycle against an in-memory HTTP transport.
"""

import asyncio
import base64
import gzip

import httpx
import pytest

from helpers import (
    ChunkStream,
    gzip_chunks,
    gzip_response,
    mock_client,
    names,
    ndjson,
    payloads,
    record,
)
from gnip_stream.config import StreamConfig
from gnip_stream.errors import (
    ConfigurationError,
    ContentError,
    DecompressionError,
    IdleTimeoutError,
    ProtocolError,
    TransportError,
    UpstreamError,
)
from gnip_stream.stream.client import (
    ConnectionState,
    StreamClient,
    build_request,
    validate_config,
)


def run_stream(config, handler):
    """Run one connection to completion and return the recorded events."""

    async def scenario():
        client = StreamClient(config, http_client=mock_client(handler))
        events = record(client)
        await client.run()
        return client, events

    return asyncio.run(scenario())


class TestConfigValidation:
    """Checks made by start() before any I/O."""

    def test_missing_url(self):
        client = StreamClient(StreamConfig())
        with pytest.raises(ConfigurationError):
            client.start()

    def test_timeout_of_exactly_30s_is_rejected(self, stream_config):
        config = stream_config.model_copy(update={"timeout_ms": 30000})
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_timeout_just_above_30s_is_accepted(self, stream_config):
        config = stream_config.model_copy(update={"timeout_ms": 30001})
        validate_config(config)
        assert config.idle_timeout_seconds == pytest.approx(30.001)

    def test_default_timeout(self, stream_config):
        assert stream_config.idle_timeout_seconds == 35.0

    def test_rejected_start_does_no_io(self, stream_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        async def scenario():
            config = stream_config.model_copy(update={"timeout_ms": 1000})
            client = StreamClient(config, http_client=mock_client(handler))
            with pytest.raises(ConfigurationError):
                client.start()
            await asyncio.sleep(0)
            return client

        client = asyncio.run(scenario())
        assert requests == []
        assert client.state is ConnectionState.IDLE

    def test_accepted_timeout_connects(self, stream_config):
        config = stream_config.model_copy(update={"timeout_ms": 30001})
        client, events = run_stream(config, lambda request: gzip_response(gzip_chunks(b"")))
        assert names(events) == ["ready", "end"]


class TestRequest:
    """Request construction."""

    @pytest.mark.parametrize("timeout_ms,expected", [(45000, 45.0), (None, 35.0)])
    def test_idle_timeout_is_the_read_timeout(self, stream_config, timeout_ms, expected):
        timeouts = []

        def handler(request):
            timeouts.append(request.extensions["timeout"])
            return gzip_response(gzip_chunks(b""))

        config = stream_config.model_copy(update={"timeout_ms": timeout_ms})
        run_stream(config, handler)
        assert timeouts[0]["read"] == expected

    def test_headers(self, stream_config):
        url, headers = build_request(stream_config)
        expected = base64.b64encode(b"user@example.com:s3cret").decode("ascii")
        assert headers["Authorization"] == f"Basic {expected}"
        assert headers["Accept-Encoding"] == "gzip"
        assert headers["Connection"] == "keep-alive"
        assert headers["User-Agent"] == "gnip-stream-tests/1.0"

    def test_no_user_agent_header_when_unset(self, stream_config):
        _, headers = build_request(stream_config.model_copy(update={"user_agent": None}))
        assert "User-Agent" not in headers

    def test_query_overrides_win(self):
        config = StreamConfig(
            url="https://stream.example.com/track.json?partition=1&client=2",
            backfill_minutes=5,
            partition=3,
        )
        url, _ = build_request(config)
        assert url.params["partition"] == "3"
        assert url.params["client"] == "2"
        assert url.params["backfillMinutes"] == "5"
        assert url.path == "/track.json"

    def test_query_untouched_without_overrides(self, stream_config):
        url, _ = build_request(stream_config)
        assert str(url) == stream_config.url

    def test_sent_request(self, stream_config):
        seen = []

        def handler(request):
            seen.append(request)
            return gzip_response(gzip_chunks(b""))

        run_stream(stream_config.model_copy(update={"partition": 2}), handler)
        request = seen[0]
        assert request.method == "GET"
        assert request.url.params["partition"] == "2"
        assert request.headers["accept-encoding"] == "gzip"
        assert request.headers["authorization"].startswith("Basic ")


class TestStreaming:
    """Happy path and classification."""

    def test_events_in_stream_order(self, stream_config, sample_tweet):
        payload = ndjson(
            sample_tweet,
            {"delete": {"status": {"id": "1"}}},
            {"info": {"message": "Replay Request Completed"}},
            {"error": {"message": "Slow consumer"}},
            {"id": 7},
        )
        client, events = run_stream(
            stream_config,
            lambda request: gzip_response(gzip_chunks(payload, size=5)),
        )

        assert names(events) == [
            "ready",
            "object", "tweet",
            "object", "delete",
            "object", "info",
            "object", "error",
            "object",
            "end",
        ]
        tweet = next(payload for name, payload in events if name == "tweet")
        assert tweet["actor"]["id"] == 9007199254740993

        error = next(payload for name, payload in events if name == "error")
        assert isinstance(error, UpstreamError)
        assert str(error) == "Stream response error: Slow consumer"

    def test_data_events_carry_decompressed_bytes(self, stream_config):
        payload = ndjson({"body": "a"}, {"body": "b"})
        _, events = run_stream(stream_config, lambda request: gzip_response(gzip_chunks(payload, 3)))
        data = b"".join(chunk for name, chunk in events if name == "data")
        assert data == payload

    def test_metrics(self, stream_config):
        payload = ndjson({"body": "a"}, {"delete": {"id": 1}}, {"info": {"m": 1}}, {"x": 1})
        client, _ = run_stream(stream_config, lambda request: gzip_response(gzip_chunks(payload)))
        metrics = client.metrics.to_dict()
        assert metrics["connections"] == 1
        assert metrics["objects_received"] == 4
        assert metrics["tweets"] == 1
        assert metrics["deletes"] == 1
        assert metrics["infos"] == 1
        assert metrics["last_status_code"] == 200
        assert metrics["bytes_decompressed"] == len(payload)

    def test_malformed_value_does_not_end_stream(self, stream_config):
        payload = b'{"body": }\r\n' + ndjson({"body": "after"})
        client, events = run_stream(stream_config, lambda request: gzip_response(gzip_chunks(payload)))
        assert names(events) == ["ready", "error", "object", "tweet", "end"]
        assert isinstance(payloads(events, "error")[0], ContentError)
        assert client.metrics.parse_errors == 1

    def test_identity_encoded_response(self, stream_config):
        payload = ndjson({"body": "plain"})

        def handler(request):
            return httpx.Response(200, stream=ChunkStream([payload]))

        _, events = run_stream(stream_config, handler)
        assert names(events) == ["ready", "object", "tweet", "end"]

    def test_context_manager(self, stream_config):
        async def scenario():
            ready = asyncio.Event()
            hold = asyncio.Event()
            client = StreamClient(
                stream_config,
                http_client=mock_client(lambda request: gzip_response(gzip_chunks(b""), hold=hold)),
            )
            events = record(client)
            client.on("ready", ready.set)
            async with client:
                await asyncio.wait_for(ready.wait(), timeout=5)
                assert client.connected
            return client, events

        client, events = asyncio.run(scenario())
        assert names(events) == ["ready", "end"]
        assert client.state is ConnectionState.ENDED


class TestTerminalConditions:
    """Each terminal condition yields exactly one end."""

    def test_non_2xx_status(self, stream_config):
        client, events = run_stream(stream_config, lambda request: httpx.Response(401))

        assert names(events, skip=()) == ["error", "end"]
        error = events[0][1]
        assert isinstance(error, ProtocolError)
        assert error.status_code == 401
        assert "401" in str(error)
        assert client.metrics.last_status_code == 401

    def test_status_boundaries(self, stream_config):
        for status, expected in ((199, "error"), (299, "ready"), (300, "error")):
            def handler(request, status=status):
                if status == 299:
                    return httpx.Response(
                        status,
                        headers={"Content-Encoding": "gzip"},
                        stream=ChunkStream(gzip_chunks(b"")),
                    )
                return httpx.Response(status)

            _, events = run_stream(stream_config, handler)
            assert names(events)[0] == expected
            assert names(events)[-1] == "end"

    def test_idle_timeout(self, stream_config):
        def handler(request):
            return gzip_response(
                gzip_chunks(ndjson({"body": "a"})),
                error=httpx.ReadTimeout("no data"),
            )

        client, events = run_stream(stream_config, handler)
        assert names(events) == ["ready", "object", "tweet", "error", "end"]
        error = payloads(events, "error")[0]
        assert isinstance(error, IdleTimeoutError)
        assert str(error) == "Connection Timeout"

    def test_error_survives_end_during_client_close(self, stream_config, monkeypatch):
        closing = asyncio.Event()
        release = asyncio.Event()

        class SlowClosingClient(httpx.AsyncClient):
            def __init__(self, **kwargs):
                super().__init__(transport=httpx.MockTransport(lambda request: httpx.Response(503)))

            async def aclose(self):
                closing.set()
                await release.wait()
                await super().aclose()

        monkeypatch.setattr(httpx, "AsyncClient", SlowClosingClient)

        async def scenario():
            client = StreamClient(stream_config)
            events = record(client)
            client.start()
            await asyncio.wait_for(closing.wait(), timeout=5)
            client.end()
            release.set()
            await client.wait_closed()
            return events

        events = asyncio.run(scenario())
        assert names(events) == ["error", "end"]
        assert isinstance(payloads(events, "error")[0], ProtocolError)

    def test_transport_error(self, stream_config):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        _, events = run_stream(stream_config, handler)
        assert names(events) == ["error", "end"]
        error = events[0][1]
        assert isinstance(error, TransportError)
        assert isinstance(error.__cause__, httpx.ConnectError)

    def test_read_error_mid_stream(self, stream_config):
        def handler(request):
            return gzip_response(gzip_chunks(ndjson({"body": "a"})), error=httpx.ReadError("reset"))

        _, events = run_stream(stream_config, handler)
        assert names(events) == ["ready", "object", "tweet", "error", "end"]

    def test_corrupt_gzip(self, stream_config):
        def handler(request):
            return gzip_response([b"definitely not gzip"])

        _, events = run_stream(stream_config, handler)
        assert names(events) == ["ready", "error", "end"]
        assert isinstance(payloads(events, "error")[0], DecompressionError)

    def test_server_close_ends_without_error(self, stream_config):
        _, events = run_stream(
            stream_config,
            lambda request: gzip_response(gzip_chunks(ndjson({"id": 1}))),
        )
        assert names(events) == ["ready", "object", "end"]


class TestEnd:
    """Explicit teardown."""

    def test_end_without_connection_is_noop(self, stream_config):
        client = StreamClient(stream_config)
        events = record(client)
        client.end()
        assert events == []

    def test_end_twice_fires_one_end(self, stream_config):
        async def scenario():
            ready = asyncio.Event()
            hold = asyncio.Event()
            client = StreamClient(
                stream_config,
                http_client=mock_client(lambda request: gzip_response(gzip_chunks(b""), hold=hold)),
            )
            events = record(client)
            client.on("ready", ready.set)

            client.start()
            await asyncio.wait_for(ready.wait(), timeout=5)
            client.end()
            client.end()
            await client.wait_closed()
            client.end()
            return client, events

        client, events = asyncio.run(scenario())
        assert names(events) == ["ready", "end"]
        assert client.connection is None
        assert client.state is ConnectionState.ENDED

    def test_end_from_handler_stops_dispatch(self, stream_config):
        payload = ndjson({"body": "one"}, {"body": "two"}, {"body": "three"})

        async def scenario():
            client = StreamClient(
                stream_config,
                http_client=mock_client(lambda request: gzip_response([gzip.compress(payload)])),
            )
            events = record(client)
            client.on("tweet", lambda tweet: client.end())
            await client.run()
            return events

        events = asyncio.run(scenario())
        assert names(events, skip=()) == ["ready", "object", "tweet", "end"]

    def test_end_before_task_runs(self, stream_config):
        requests = []

        def handler(request):
            requests.append(request)
            return gzip_response(gzip_chunks(b""))

        async def scenario():
            client = StreamClient(stream_config, http_client=mock_client(handler))
            events = record(client)
            client.start()
            client.end()
            await client.wait_closed()
            return events

        events = asyncio.run(scenario())
        assert names(events) == ["end"]
        assert requests == []


class TestRestart:
    """start() while connected."""

    def test_restart_tears_down_old_connection_first(self, stream_config):
        async def scenario():
            old_tweet = asyncio.Event()
            hold = asyncio.Event()
            calls = []

            def handler(request):
                calls.append(request)
                if len(calls) == 1:
                    return gzip_response(gzip_chunks(ndjson({"body": "old"})), hold=hold)
                return gzip_response(gzip_chunks(ndjson({"body": "new"})))

            client = StreamClient(stream_config, http_client=mock_client(handler))
            events = record(client)
            client.once("tweet", lambda tweet: old_tweet.set())

            first = client.start()
            await asyncio.wait_for(old_tweet.wait(), timeout=5)

            second = client.start()
            assert first.closed
            assert client.connection is second

            # Releasing the old body must not leak events
            hold.set()
            await client.wait_closed()
            await asyncio.wait({first.task})
            return events

        events = asyncio.run(scenario())
        sequence = names(events)
        assert sequence[0] == "ready"
        first_end = sequence.index("end")
        assert sequence[first_end + 1] == "ready"
        assert sequence.count("end") == 2
        tweets = [payload["body"] for name, payload in events if name == "tweet"]
        assert tweets == ["old", "new"]

    def test_restart_from_end_handler_keeps_one_connection(self, stream_config):
        async def scenario():
            ready = asyncio.Event()
            hold = asyncio.Event()
            client = StreamClient(
                stream_config,
                http_client=mock_client(
                    lambda request: gzip_response(gzip_chunks(b""), hold=hold)
                ),
            )
            reopened = []

            def reopen():
                if not reopened:
                    reopened.append(client.start())

            client.on("ready", ready.set)
            client.on("end", reopen)

            first = client.start()
            await asyncio.wait_for(ready.wait(), timeout=5)
            ready.clear()

            second = client.start()
            await asyncio.wait_for(ready.wait(), timeout=5)

            opened = [first, *reopened]
            live = [connection for connection in opened if not connection.closed]
            assert client.connection is second

            client.off("end")
            client.end()
            hold.set()
            await client.wait_closed()
            return client, first, second, reopened, live

        client, first, second, reopened, live = asyncio.run(scenario())
        assert second is reopened[0]
        assert live == [second]
        assert first.closed
        assert client.metrics.connections == 2
