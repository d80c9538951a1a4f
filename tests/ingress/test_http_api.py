"""
Tests for the HTTP ingress.

Tests cover:
- Bearer header and query token authentication
- Open access when no tokens are configured
- Request body validation
- 503 while the queue is shutting down
- /live and /metrics endpoints
- Request bodies reaching the engine merged over default input
"""

import time
from unittest.mock import Mock

import pytest
from aiohttp import test_utils

from conversation_runner import metrics  # noqa: F401  registers collectors
from conversation_runner.core.processor import JobProcessor
from conversation_runner.core.queue import JobQueue
from conversation_runner.errors import InvalidJobError, QueueClosedError
from conversation_runner.ingress.http_api import HTTP_JOB_KEY, HttpIngress


@pytest.fixture
def queue():
    q = Mock()
    q.push.return_value = "job-123"
    q.accepting = True
    q.active = 1
    q.waiting = 2
    return q


@pytest.fixture
def make_client(queue):
    async def factory(api_tokens=("t1", "t2")):
        ingress = HttpIngress(queue, api_tokens=api_tokens, deadline_sec=60)
        client = test_utils.TestClient(test_utils.TestServer(ingress.build_app()))
        await client.start_server()
        return client

    return factory


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token_is_401_and_nothing_queued(self, make_client, queue):
        client = await make_client()
        try:
            resp = await client.post("/conversation", json={"endpoint": "+15551234567"})
            assert resp.status == 401
            assert await resp.json() == {"status": "error", "message": "Unauthorized"}
            queue.push.assert_not_called()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_wrong_token_is_401(self, make_client, queue):
        client = await make_client()
        try:
            resp = await client.post("/conversation", json={}, headers={"Authorization": "Bearer nope"})
            assert resp.status == 401
            queue.push.assert_not_called()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_bearer_token_accepted(self, make_client, queue):
        client = await make_client()
        try:
            before = time.time()
            resp = await client.post("/conversation", json={"endpoint": "+15551234567"},
                                     headers={"Authorization": "Bearer t2"})
            assert resp.status == 200
            assert await resp.json() == {"status": "ok", "message": "Conversation queued", "jobId": "job-123"}

            args, kwargs = queue.push.call_args
            assert args == (HTTP_JOB_KEY,)
            assert kwargs["input"] == {"endpoint": "+15551234567"}
            assert before + 59 < kwargs["before"] <= time.time() + 60
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_query_token_accepted(self, make_client, queue):
        client = await make_client()
        try:
            resp = await client.post("/conversation?token=t1", json={})
            assert resp.status == 200
            queue.push.assert_called_once()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_open_access_without_tokens(self, make_client, queue):
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation", json={"endpoint": "+15551234567"})
            assert resp.status == 200
        finally:
            await client.close()


class TestRequestBody:

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_input(self, make_client, queue):
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation")
            assert resp.status == 200
            assert queue.push.call_args.kwargs["input"] == {}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, make_client, queue):
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation", data="{not json",
                                     headers={"Content-Type": "application/json"})
            assert resp.status == 400
            assert (await resp.json())["status"] == "error"
            queue.push.assert_not_called()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_non_object_body_is_400(self, make_client, queue):
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation", json=["a", "b"])
            assert resp.status == 400
            queue.push.assert_not_called()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_invalid_job_is_400(self, make_client, queue):
        queue.push.side_effect = InvalidJobError("input keys must be strings")
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation", json={})
            assert resp.status == 400
            assert (await resp.json())["message"] == "input keys must be strings"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_queue_closed_is_503(self, make_client, queue):
        queue.push.side_effect = QueueClosedError("queue is not accepting jobs")
        client = await make_client(api_tokens=())
        try:
            resp = await client.post("/conversation", json={})
            assert resp.status == 503
        finally:
            await client.close()


class TestProbes:

    @pytest.mark.asyncio
    async def test_live_reports_queue_counters(self, make_client):
        client = await make_client()
        try:
            resp = await client.get("/live")
            assert resp.status == 200
            assert await resp.json() == {"status": "ok", "accepting": True, "active": 1, "waiting": 2}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_metrics_exposes_job_counters(self, make_client):
        client = await make_client()
        try:
            resp = await client.get("/metrics")
            assert resp.status == 200
            text = await resp.text()
            assert "conversation_runner_jobs_active" in text
        finally:
            await client.close()


class TestQueuedConversation:

    @pytest.mark.asyncio
    async def test_request_body_merged_over_defaults(self, fake_engine, notifier, settle):
        """A posted body reaches the engine merged over the default input, caller keys winning."""
        queue = JobQueue(fake_engine.create_session, concurrency=1)
        JobProcessor(notifier, default_input={"greeting": "hi", "endpoint": "default"}).attach(queue)
        queue.start()
        ingress = HttpIngress(queue, api_tokens=("t1",))
        client = test_utils.TestClient(test_utils.TestServer(ingress.build_app()))
        await client.start_server()
        try:
            resp = await client.post("/conversation", json={"endpoint": "+15551234567"},
                                     headers={"Authorization": "Bearer t1"})
            assert resp.status == 200
            job_id = (await resp.json())["jobId"]
            await settle()

            session = fake_engine.sessions[job_id]
            assert session.executed_with["input"] == {"greeting": "hi", "endpoint": "+15551234567"}

            session.complete({"outcome": "answered"})
            await queue.join()
        finally:
            await client.close()
