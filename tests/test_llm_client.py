from unittest.mock import Mock

import httpx
import openai
import pytest
from tenacity import wait_none

from dictation.agents.response_parser import parse_exercise_response
from dictation.utils.exceptions import GenerationTransportError, ParseError, QuotaExceededError
from dictation.utils.llm_client import LLMClient, MockLLMClient, _decode_error_payload, create_llm_client

API_URL = "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"

GEMINI_QUOTA_BODY = [{
    "error": {
        "code": 429,
        "message": "You exceeded your current quota, please check your plan and billing details.",
        "status": "RESOURCE_EXHAUSTED",
        "details": [
            {
                "@type": "type.googleapis.com/google.rpc.QuotaFailure",
                "violations": [{
                    "quotaMetric": "generativelanguage.googleapis.com/generate_content_free_tier_requests",
                    "quotaId": "GenerateRequestsPerDayPerProjectPerModel-FreeTier",
                    "quotaValue": "20",
                }],
            },
            {
                "@type": "type.googleapis.com/google.rpc.RetryInfo",
                "retryDelay": "20s",
            },
        ],
    }
}]


def _response(status_code, headers=None):
    return httpx.Response(status_code, headers=headers, request=httpx.Request("POST", API_URL))


def _completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))], usage=Mock(total_tokens=42))


def _client_with(side_effect=None, return_value=None):
    fake = Mock()
    if side_effect is not None:
        fake.chat.completions.create.side_effect = side_effect
    else:
        fake.chat.completions.create.return_value = return_value
    return LLMClient(client=fake, model="gemini-test"), fake


@pytest.mark.asyncio
async def test_returns_model_text(fenced_sample_response):
    client, fake = _client_with(return_value=_completion(fenced_sample_response))

    text = await client.generate_exercise_text("prompt")

    assert parse_exercise_response(text).sentence == "I love reading books"
    kwargs = fake.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "", "   \n"])
async def test_empty_content_raises_parse_error(content):
    client, _ = _client_with(return_value=_completion(content))
    with pytest.raises(ParseError):
        await client.generate_exercise_text("prompt")


@pytest.mark.asyncio
async def test_structured_quota_error():
    error = openai.RateLimitError("Error code: 429", response=_response(429), body=GEMINI_QUOTA_BODY)
    client, fake = _client_with(side_effect=error)

    with pytest.raises(QuotaExceededError) as exc_info:
        await client.generate_exercise_text("prompt")

    assert exc_info.value.quota_limit == 20
    assert exc_info.value.retry_after_seconds == 20.0
    assert exc_info.value.status_code == 429
    # 配额错误不重试
    assert fake.chat.completions.create.call_count == 1


@pytest.mark.asyncio
async def test_quota_details_from_message_text():
    message = ("Quota exceeded for metric: generate_content_free_tier_requests, limit: 50. "
               "Please retry in 33.5s.")
    error = openai.RateLimitError(message, response=_response(429), body=None)
    client, _ = _client_with(side_effect=error)

    with pytest.raises(QuotaExceededError) as exc_info:
        await client.generate_exercise_text("prompt")

    assert exc_info.value.quota_limit == 50
    assert exc_info.value.retry_after_seconds == pytest.approx(33.5)


@pytest.mark.asyncio
async def test_quota_retry_after_header():
    error = openai.RateLimitError("Too many requests", response=_response(429, {"retry-after": "90"}), body=None)
    client, _ = _client_with(side_effect=error)

    with pytest.raises(QuotaExceededError) as exc_info:
        await client.generate_exercise_text("prompt")

    assert exc_info.value.quota_limit is None
    assert exc_info.value.retry_after_seconds == 90.0


@pytest.mark.asyncio
async def test_resource_exhausted_status_counts_as_quota():
    body = {"error": {"code": 403, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
    error = openai.PermissionDeniedError("quota", response=_response(403), body=body)
    client, _ = _client_with(side_effect=error)

    with pytest.raises(QuotaExceededError) as exc_info:
        await client.generate_exercise_text("prompt")
    assert exc_info.value.retry_after_seconds is None


@pytest.mark.asyncio
async def test_server_error_is_transport_error():
    body = {"error": {"code": 500, "message": "Internal error encountered.", "status": "INTERNAL"}}
    error = openai.InternalServerError("Error code: 500", response=_response(500), body=body)
    client, fake = _client_with(side_effect=error)

    with pytest.raises(GenerationTransportError) as exc_info:
        await client.generate_exercise_text("prompt")

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal error encountered."
    assert fake.chat.completions.create.call_count == 1


@pytest.mark.asyncio
async def test_connection_errors_are_retried_then_reported(monkeypatch):
    monkeypatch.setattr(LLMClient.generate_response.retry, "wait", wait_none())
    error = openai.APIConnectionError(request=httpx.Request("POST", API_URL))
    client, fake = _client_with(side_effect=error)

    with pytest.raises(GenerationTransportError) as exc_info:
        await client.generate_exercise_text("prompt")

    assert exc_info.value.status_code is None
    assert fake.chat.completions.create.call_count == 3


@pytest.mark.parametrize("body, expected", [
    ('{"error": {"message": "boom"}}', {"message": "boom"}),
    ([{"error": {"message": "boom"}}], {"message": "boom"}),
    ("not json", {"message": "not json"}),
    (None, {}),
    ([], {}),
])
def test_decode_error_payload(body, expected):
    assert _decode_error_payload(body) == expected


@pytest.mark.asyncio
async def test_mock_client_returns_parsable_exercise():
    text = await MockLLMClient().generate_exercise_text("prompt")
    exercise = parse_exercise_response(text)
    assert exercise.chunks[-1] == exercise.sentence


def test_create_llm_client_uses_mock_without_key(monkeypatch):
    monkeypatch.setattr("dictation.utils.llm_client.settings.LLM_API_KEY", "")
    assert isinstance(create_llm_client(), MockLLMClient)
    assert isinstance(create_llm_client(use_mock=True), MockLLMClient)
