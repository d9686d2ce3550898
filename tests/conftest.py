"""Pytest fixtures for KMS client tests."""

import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from aliyun_kms.credentials import Credential, StaticCredentialResolver
from aliyun_kms.engine import RetryEngine

TEST_ENDPOINT = "kms.cn-hangzhou.aliyuncs.com"
FIXED_TIMESTAMP = "2016-02-23T12:46:24.000Z"


class Recorder:
    """Mock KMS server: replays scripted responses and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        if not isinstance(body, (str, bytes)):
            body = json.dumps(body)
        return httpx.Response(status, content=body)

    @property
    def count(self) -> int:
        return len(self.requests)

    def params(self, index: int = -1) -> dict[str, str]:
        query = urlsplit(str(self.requests[index].url)).query
        return {k: v[0] for k, v in parse_qs(query).items()}


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep ALIYUN_KMS_* and ALIBABA_CLOUD_* variables from leaking into tests."""
    import os
    for name in list(os.environ):
        if name.startswith(("ALIYUN_KMS_", "ALIBABA_CLOUD_")):
            monkeypatch.delenv(name)


@pytest.fixture
def credential():
    return Credential(access_key_id="testid", access_key_secret="testsecret")


@pytest.fixture
def resolver(credential):
    return StaticCredentialResolver(credential)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_server():
    """Build a Recorder from (status, body) tuples or exceptions."""
    return Recorder


@pytest.fixture
def make_engine(resolver, sleeper):
    """Build a RetryEngine wired to a mock transport."""

    def factory(server, resolver=resolver, **kwargs):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(server))
        return RetryEngine(
            TEST_ENDPOINT,
            resolver,
            http_client=http_client,
            sleep=sleeper,
            **kwargs,
        )

    return factory
