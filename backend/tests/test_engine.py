import json

import httpx
import pytest

from talkwell.voice.engine import CallConfig, VapiEngine, VoiceEngineError


def make_engine(handler, **kwargs):
    params = dict(api_key="sk-test", assistant_id="asst-1", base_url="https://vapi.test/")
    params.update(kwargs)
    return VapiEngine(transport=httpx.MockTransport(handler), **params)


async def test_start_posts_assistant_and_context():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "call-1", "monitor": {"controlUrl": "https://ctl.test/call-1"}})

    engine = make_engine(handler)
    call_id = await engine.start(CallConfig(patient_id="p-1", context="PATIENT PROFILE: ..."))

    assert call_id == "call-1"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://vapi.test/call"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["assistantId"] == "asst-1"
    assert body["assistantOverrides"]["variableValues"]["patientContext"] == "PATIENT PROFILE: ..."
    assert body["metadata"] == {"patientId": "p-1"}


async def test_stop_uses_control_url_when_known():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/call" and request.method == "POST":
            return httpx.Response(201, json={"id": "call-1", "monitor": {"controlUrl": "https://ctl.test/call-1"}})
        return httpx.Response(200, json={})

    engine = make_engine(handler)
    await engine.start(CallConfig(patient_id="p-1", context="ctx"))
    await engine.stop("call-1")

    stop = seen[-1]
    assert stop.method == "POST"
    assert str(stop.url) == "https://ctl.test/call-1"
    assert json.loads(stop.content) == {"type": "end-call"}


async def test_stop_without_control_url_deletes_call():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    engine = make_engine(handler)
    await engine.stop("call-9")
    await engine.stop(None)

    assert [(r.method, r.url.path) for r in seen] == [("DELETE", "/call/call-9")]


async def test_unconfigured_engine_refuses_to_start():
    engine = make_engine(lambda request: httpx.Response(500), api_key="")
    with pytest.raises(VoiceEngineError):
        await engine.start(CallConfig(patient_id="p-1", context="ctx"))


async def test_http_errors_propagate():
    engine = make_engine(lambda request: httpx.Response(401, json={"message": "bad key"}))
    with pytest.raises(httpx.HTTPStatusError):
        await engine.start(CallConfig(patient_id="p-1", context="ctx"))


async def test_missing_call_id_is_an_error():
    engine = make_engine(lambda request: httpx.Response(201, json={}))
    with pytest.raises(VoiceEngineError):
        await engine.start(CallConfig(patient_id="p-1", context="ctx"))
