"""
End-to-end tests of the proxy HTTP surface against a mocked upstream API.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from streaming_helpers import delta_payload, sse_body, usage_payload


UPSTREAM = "https://upstream.test/api/v1"


class FailingStream(httpx.AsyncByteStream):
    """Upstream body that breaks after the first chunk."""

    def __init__(self, first_chunk: bytes):
        self.first_chunk = first_chunk

    async def __aiter__(self):
        yield self.first_chunk
        raise httpx.ReadError("connection reset by peer")


class UpstreamStub:
    """Records upstream requests and answers from a queue of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self._last_served = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)

        # The last response repeats; later copies are rebuilt from its content
        template = self.responses[0]
        if not self._last_served:
            self._last_served = True
            return template
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


def event_stream_response(body: bytes) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)


def chat_body(**overrides):
    body = {
        "model": "llama-3.3-70b",
        "messages": [{"role": "user", "content": "Hello"}],
        "stream": True,
        "venice_parameters": {"enable_web_search": "auto"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def make_client(proxy_config_dir):
    clients = []

    def factory(stub, config_dir=None):
        httpx_client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
        app = create_app(config_dir=str(config_dir or proxy_config_dir), httpx_client=httpx_client)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.__exit__(None, None, None)


class TestHealthAndModels:
    def test_health(self, make_client):
        client = make_client(UpstreamStub(httpx.Response(200, json={})))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()
        assert response.headers["X-Request-ID"]

    def test_client_request_id_is_kept(self, make_client):
        client = make_client(UpstreamStub(httpx.Response(200, json={})))
        response = client.get("/health", headers={"X-Request-ID": "req-from-client"})
        assert response.headers["X-Request-ID"] == "req-from-client"

    def test_models_forwarded(self, make_client, model_listing):
        stub = UpstreamStub(httpx.Response(200, json=model_listing))
        client = make_client(stub)

        response = client.get("/models")
        assert response.status_code == 200
        assert response.json() == {"object": "list", "data": model_listing["data"]}

        upstream_request = stub.requests[0]
        assert str(upstream_request.url) == f"{UPSTREAM}/models"
        assert upstream_request.headers["Authorization"] == "Bearer upstream-secret"

    def test_models_type_and_models_key(self, make_client):
        stub = UpstreamStub(httpx.Response(200, json={"models": [{"id": "flux-dev", "type": "image"}]}))
        client = make_client(stub)

        response = client.get("/models", params={"type": "image"})
        assert response.json()["data"] == [{"id": "flux-dev", "type": "image"}]
        assert stub.requests[0].url.params["type"] == "image"

    def test_models_upstream_error(self, make_client):
        client = make_client(UpstreamStub(httpx.Response(503, text="maintenance")))
        response = client.get("/models")
        assert response.status_code == 503
        assert response.json()["detail"]["error"]["code"] == "upstream_http_error_503"

    def test_missing_upstream_key(self, make_client, monkeypatch):
        monkeypatch.delenv("TEST_VENICE_KEY")
        client = make_client(UpstreamStub(httpx.Response(200, json={"data": []})))
        response = client.get("/models")
        assert response.status_code == 500
        assert response.json()["detail"]["error"]["code"] == "upstream_config_error"


class TestChatStreaming:
    def test_stream_relayed_byte_for_byte(self, make_client):
        upstream_body = sse_body(delta_payload("Hel"), delta_payload("lo"), usage_payload(5, 2, 7))
        stub = UpstreamStub(event_stream_response(upstream_body))
        client = make_client(stub)

        response = client.post("/chat", json=chat_body())
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.content == upstream_body

    def test_upstream_request_carries_key_and_defaults(self, make_client):
        stub = UpstreamStub(event_stream_response(sse_body(delta_payload("x"))))
        client = make_client(stub)

        client.post("/chat", json=chat_body(), headers={"Authorization": "Bearer ignored-client-key"})

        upstream_request = stub.requests[0]
        assert str(upstream_request.url) == f"{UPSTREAM}/chat/completions"
        assert upstream_request.headers["Authorization"] == "Bearer upstream-secret"

        body = stub.last_body
        assert body["model"] == "llama-3.3-70b"
        assert body["venice_parameters"] == {
            "enable_web_search": "auto",
            "include_venice_system_prompt": False,
        }

    def test_client_values_override_defaults(self, make_client):
        stub = UpstreamStub(event_stream_response(sse_body(delta_payload("x"))))
        client = make_client(stub)

        client.post("/chat", json=chat_body(venice_parameters={"include_venice_system_prompt": True}))
        assert stub.last_body["venice_parameters"]["include_venice_system_prompt"] is True

    def test_upstream_error_status_propagates(self, make_client):
        stub = UpstreamStub(httpx.Response(500, json={"error": {"message": "model crashed"}}))
        client = make_client(stub)

        response = client.post("/chat", json=chat_body())
        assert response.status_code == 500
        error = response.json()["detail"]["error"]
        assert error["code"] == "upstream_http_error_500"
        assert "model crashed" in error["message"]

    def test_rate_limit_is_retried(self, make_client):
        stub = UpstreamStub(
            httpx.Response(429, headers={"Retry-After": "0"}, text="slow down"),
            event_stream_response(sse_body(delta_payload("after retry"))),
        )
        client = make_client(stub)

        response = client.post("/chat", json=chat_body())
        assert response.status_code == 200
        assert b"after retry" in response.content
        assert len(stub.requests) == 2

    def test_rate_limit_exhausted(self, make_client):
        stub = UpstreamStub(httpx.Response(429, headers={"Retry-After": "0"}))
        client = make_client(stub)

        response = client.post("/chat", json=chat_body())
        assert response.status_code == 429
        assert response.json()["detail"]["error"]["code"] == "rate_limit_exceeded"
        assert len(stub.requests) == 4

    def test_mid_stream_failure_becomes_error_event(self, make_client):
        first_chunk = sse_body(delta_payload("partial"), done=False)
        stub = UpstreamStub(httpx.Response(
            200, headers={"content-type": "text/event-stream"}, stream=FailingStream(first_chunk)
        ))
        client = make_client(stub)

        response = client.post("/chat", json=chat_body())
        assert response.status_code == 200
        assert response.content.startswith(first_chunk)

        error_line = response.content[len(first_chunk):].decode("utf-8").strip()
        assert error_line.startswith("data: ")
        error = json.loads(error_line[len("data: "):])["error"]
        assert error["code"] == "upstream_network_error"

    def test_network_error_before_stream(self, make_client):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(unreachable)
        response = client.post("/chat", json=chat_body())
        assert response.status_code == 502
        assert response.json()["detail"]["error"]["code"] == "upstream_network_error"


class TestChatNonStreaming:
    def test_json_answer(self, make_client):
        answer = {"choices": [{"message": {"role": "assistant", "content": "Hi!"}}],
                  "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4}}
        stub = UpstreamStub(httpx.Response(200, json=answer))
        client = make_client(stub)

        response = client.post("/chat", json=chat_body(stream=False))
        assert response.status_code == 200
        assert response.json() == answer
        assert stub.last_body["stream"] is False

    def test_upstream_client_error(self, make_client):
        client = make_client(UpstreamStub(httpx.Response(400, json={"error": "unknown model"})))
        response = client.post("/chat", json=chat_body(stream=False))
        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "upstream_http_error_400"


class TestChatValidation:
    def setup_method(self):
        self.stub = UpstreamStub(event_stream_response(sse_body()))

    @pytest.mark.parametrize("body,code", [
        ({"messages": [{"role": "user", "content": "x"}]}, "missing_required_field"),
        ({"model": "m"}, "missing_required_field"),
        ({"model": "m", "messages": []}, "invalid_request_format"),
        ({"model": "m", "messages": [{"role": "robot", "content": "x"}]}, "invalid_request_format"),
        ({"model": "m", "messages": [{"role": "user", "content": "x"}], "stream": "yes"}, "invalid_request_format"),
        ({"model": "m", "messages": [{"role": "user", "content": "x"}], "temperature": "hot"}, "invalid_request_format"),
        ([1, 2, 3], "invalid_request_format"),
    ])
    def test_rejected_before_upstream(self, make_client, body, code):
        client = make_client(self.stub)
        response = client.post("/chat", json=body)
        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == code
        assert self.stub.requests == []

    def test_invalid_json(self, make_client):
        client = make_client(self.stub)
        response = client.post("/chat", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "invalid_request_format"


class TestAuth:
    @pytest.fixture
    def keyed_config_dir(self, proxy_config_dir):
        config_path = proxy_config_dir / "proxy.yaml"
        text = config_path.read_text(encoding="utf-8").replace("access_keys: []", "access_keys:\n  - sk-client-0001")
        config_path.write_text(text, encoding="utf-8")
        return proxy_config_dir

    def test_open_proxy_without_keys(self, make_client, model_listing):
        client = make_client(UpstreamStub(httpx.Response(200, json=model_listing)))
        assert client.get("/models").status_code == 200

    def test_missing_key(self, make_client, keyed_config_dir):
        client = make_client(UpstreamStub(httpx.Response(200, json={"data": []})), keyed_config_dir)
        response = client.get("/models")
        assert response.status_code == 401
        assert response.json()["detail"]["error"]["code"] == "missing_api_key"

    def test_invalid_key(self, make_client, keyed_config_dir):
        client = make_client(UpstreamStub(httpx.Response(200, json={"data": []})), keyed_config_dir)
        response = client.get("/models", headers={"Authorization": "Bearer sk-wrong"})
        assert response.status_code == 401
        assert response.json()["detail"]["error"]["code"] == "invalid_api_key"

    def test_valid_key(self, make_client, keyed_config_dir):
        stub = UpstreamStub(httpx.Response(200, json={"data": []}))
        client = make_client(stub, keyed_config_dir)
        response = client.get("/models", headers={"Authorization": "Bearer sk-client-0001"})
        assert response.status_code == 200
        # The client key is never forwarded upstream
        assert stub.requests[0].headers["Authorization"] == "Bearer upstream-secret"


class TestImage:
    def test_generate(self, make_client):
        stub = UpstreamStub(httpx.Response(200, json={"id": "img-1", "images": ["aGVsbG8="]}))
        client = make_client(stub)

        response = client.post("/image", json={"model": "flux-dev", "prompt": "a lighthouse",
                                               "width": 512, "height": 512, "format": "webp"})
        assert response.status_code == 200
        assert response.json() == {"images": ["aGVsbG8="]}
        assert str(stub.requests[0].url) == f"{UPSTREAM}/image/generate"
        assert stub.last_body["prompt"] == "a lighthouse"

    def test_invalid_request(self, make_client):
        stub = UpstreamStub(httpx.Response(200, json={"images": []}))
        client = make_client(stub)
        response = client.post("/image", json={"model": "flux-dev", "prompt": "p", "width": -1})
        assert response.status_code == 400
        assert stub.requests == []

    def test_answer_without_images(self, make_client):
        client = make_client(UpstreamStub(httpx.Response(200, json={"id": "img-1"})))
        response = client.post("/image", json={"model": "flux-dev", "prompt": "p"})
        assert response.status_code == 502
        assert response.json()["detail"]["error"]["code"] == "upstream_stream_error"
