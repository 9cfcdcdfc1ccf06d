import pytest

from carewatch.agents.generator import GeminiClient, LocalTextModel, build_generator
from carewatch.agents.message_composer import MessageComposer
from carewatch.utils.message_prompts import build_family_message_prompt, fallback_message

from conftest import FakeGenerator


class FakeHttpResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeHttpSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json, "timeout": timeout})
        return self.response


def test_template_used_without_generator():
    composer = MessageComposer()
    assert composer.compose("Alice Johnson", "Lunch", "  Ate well ") == "Update for Alice Johnson: Lunch. Ate well"


def test_generated_text_is_trimmed_of_quotes(generator):
    generator.text = '  "Alice had a lovely lunch today 🍲"  '
    composer = MessageComposer(generator)
    assert composer.compose("Alice Johnson", "Lunch", "Ate well") == "Alice had a lovely lunch today 🍲"
    prompt = generator.prompts[0]
    assert "Alice Johnson" in prompt and "Lunch" in prompt and "Ate well" in prompt


@pytest.mark.parametrize("gen", [FakeGenerator(text=""), FakeGenerator(error=RuntimeError("quota exceeded"))])
def test_generator_failures_fall_back_to_template(gen):
    composer = MessageComposer(gen)
    assert composer.compose("Robert Smith", "Vital Signs", "BP 120/80") == fallback_message(
        "Robert Smith", "Vital Signs", "BP 120/80"
    )


def test_prompt_sets_tone_and_limits():
    prompt = build_family_message_prompt("Eleanor Rigby", "General Update", "Joined the music session")
    assert "under 50 words" in prompt
    assert "medical specifics" in prompt
    assert "WhatsApp" in prompt
    assert 'Staff Notes: "Joined the music session"' in prompt


def test_gemini_client_reads_first_candidate():
    payload = {"candidates": [{"content": {"parts": [{"text": "Hello family! "}, {"text": "🌼"}]}}]}
    session = FakeHttpSession(FakeHttpResponse(200, payload))
    client = GeminiClient("key-123", model="gemini-2.5-flash", session=session)
    assert client.generate("hi") == "Hello family! 🌼"
    sent = session.requests[0]
    assert sent["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert sent["params"] == {"key": "key-123"}
    assert sent["json"]["contents"][0]["parts"][0]["text"] == "hi"


def test_gemini_client_raises_on_http_error():
    client = GeminiClient("key", session=FakeHttpSession(FakeHttpResponse(429, text="quota")))
    with pytest.raises(RuntimeError):
        client.generate("hi")


def test_build_generator_selects_backend():
    assert build_generator("none", gemini_api_key="k") is None
    assert build_generator("auto") is None
    assert build_generator("gemini") is None
    assert isinstance(build_generator("auto", gemini_api_key="k"), GeminiClient)
    local = build_generator("local", local_model="some/model")
    assert isinstance(local, LocalTextModel)
    assert local.model_id == "some/model"
    assert local.model is None


def test_local_model_sends_the_prompt_once():
    prompt = build_family_message_prompt("Alice Johnson", "Lunch", "Ate all her soup")
    messages = LocalTextModel("some/model")._messages(prompt)
    assert messages == [{"role": "user", "content": prompt}]
    assert messages[0]["content"].count("elderly care home") == 1
