"""Tests for session close and the shutdown drain."""

from __future__ import annotations

import asyncio

import pytest
from fake_agave import login

from agavelink.core.envelope import RequestState
from agavelink.core.events import EVENT_AUTH_STATE_CHANGED, get_event_bus
from agavelink.core.session import AuthSession, basic_header


@pytest.mark.asyncio
async def test_quick_shutdown_when_not_logged_in(handler, fake_agave):
    wait = handler.close_session()

    assert wait.done()
    assert wait.result().state == RequestState.GOOD
    assert handler.in_shutdown_mode()
    assert fake_agave.requests == []


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_requests(handler, fake_agave):
    await login(handler, fake_agave)
    changes: list[dict] = []
    get_event_bus().subscribe(EVENT_AUTH_STATE_CHANGED, changes.append)

    gates = []
    replies = []
    for job_id in ("1", "2", "3"):
        fake_agave.on("GET", f"/jobs/v2/{job_id}", json={"status": "success", "result": {"id": job_id}})
        gates.append(fake_agave.hold("GET", f"/jobs/v2/{job_id}"))
        replies.append(handler.job_details(job_id))

    wait = handler.close_session()
    assert handler.pending_count == 4  # three jobs plus the revocation
    assert handler.list_apps() is None
    assert handler.perform_auth("alice", "s3cret") is None

    await asyncio.sleep(0.01)
    revoke = fake_agave.last("POST", "/revoke")
    assert revoke.content == b"token=at-1"
    assert revoke.headers["Authorization"] == basic_header("ck", "cs")
    assert handler.session == AuthSession()
    assert changes == [{"authenticated": False}]

    for gate in gates:
        assert not wait.done()
        gate.set()
        await asyncio.sleep(0.01)

    result = await wait
    assert result.state == RequestState.GOOD
    assert handler.pending_count == 0
    assert all(r.done() for r in replies)


@pytest.mark.asyncio
async def test_close_session_is_idempotent(handler, fake_agave):
    await login(handler, fake_agave)

    first = handler.close_session()
    second = handler.close_session()

    assert first is second
    assert (await first).ok
    assert [c for c in fake_agave.calls() if c == ("POST", "/revoke")] == [("POST", "/revoke")]


@pytest.mark.asyncio
async def test_failed_revoke_still_clears_session(handler, fake_agave):
    await login(handler, fake_agave)
    fake_agave.fail("POST", "/revoke")

    result = await handler.close_session()

    assert result.ok
    assert handler.session == AuthSession()
    assert handler.pending_count == 0


async def _wait_for_call(fake_agave, method: str, path: str) -> None:
    while (method, path) not in fake_agave.calls():
        await asyncio.sleep(0.001)


@pytest.mark.asyncio
async def test_shutdown_during_login_discards_the_new_token(handler, fake_agave):
    fake_agave.script_login()
    gate = fake_agave.hold("POST", "/token")
    login_reply = handler.perform_auth("alice", "s3cret")
    await asyncio.wait_for(_wait_for_call(fake_agave, "POST", "/token"), timeout=1.0)

    wait = handler.close_session()
    assert not wait.done()
    assert handler.session.client_header == basic_header("ck", "cs")

    gate.set()
    result = await wait

    assert result.ok
    assert (await login_reply).state == RequestState.NO_CONNECT
    assert handler.session == AuthSession()
    assert handler.username == ""
    assert handler.pending_count == 0
    revoke = fake_agave.last("POST", "/revoke")
    assert revoke.content == b"token=at-1"
    assert revoke.headers["Authorization"] == basic_header("ck", "cs")


@pytest.mark.asyncio
async def test_shutdown_before_client_registration_ends_login(handler, fake_agave):
    fake_agave.script_login()
    gate = fake_agave.hold("GET", "/clients/v2/TestClient")
    login_reply = handler.perform_auth("alice", "s3cret")

    wait = handler.close_session()
    gate.set()

    assert (await wait).ok
    assert (await login_reply).state == RequestState.NO_CONNECT
    assert ("DELETE", "/clients/v2/TestClient") not in fake_agave.calls()
    assert handler.session == AuthSession()


@pytest.mark.asyncio
async def test_refresh_completing_after_shutdown_is_discarded(handler, fake_agave):
    await login(handler, fake_agave)
    fake_agave.on("POST", "/token", json={"access_token": "at-2", "refresh_token": "rt-2"})
    gate = fake_agave.hold("POST", "/token")
    refresh = handler.refresh_auth()
    assert refresh is not None

    wait = handler.close_session()
    gate.set()

    assert (await wait).ok
    assert (await refresh).state == RequestState.NO_CONNECT
    assert handler.session == AuthSession()
    revoked = [r.content for r in fake_agave.requests if r.url.path == "/revoke"]
    assert b"token=at-1" in revoked
