from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import openai
import pytest

from lexibox.config import Settings
from lexibox.content import (
    LocalContentGenerator, OpenAIChatClient, OpenAIContentGenerator, WordDefinition,
    generate_word_content, parse_word_definition,
)
from lexibox.errors import GenerationError, GenerationErrorKind
from lexibox.models import CEFRLevel

REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")


def _settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


def _reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(response=None, error=None):
    client = Mock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        client.chat.completions.create.return_value = response
    return client


def test_parse_fenced_json_with_camel_case():
    text = """Here you go:
```json
{
  "word": "Serendipity",
  "definition": "Finding something good without looking for it",
  "shortDefinition": "lucky find",
  "translation": "serendipia",
  "example": "Meeting her was pure serendipity.",
  "phonetics": "/ˌserənˈdɪpəti/",
  "cefrLevel": "c1",
  "tags": ["Luck", "emotions", "luck"]
}
```"""
    content = parse_word_definition(text)
    assert content.word == "Serendipity"
    assert content.short_definition == "lucky find"
    assert content.cefr_level is CEFRLevel.C1
    assert content.tags == ["luck", "emotions"]


def test_parse_accepts_comma_separated_tags():
    content = parse_word_definition('{"word": "run", "definition": "move fast", "tags": "Sport, verbs"}')
    assert content.tags == ["sport", "verbs"]


def test_parse_unknown_cefr_becomes_none():
    content = parse_word_definition('{"word": "run", "definition": "move fast", "cefrLevel": "Z9"}')
    assert content.cefr_level is None


def test_parse_uses_fallback_word():
    content = parse_word_definition('{"definition": "move fast"}', fallback_word="run")
    assert content.word == "run"


@pytest.mark.parametrize("text", [
    "Sorry, I can't help with that.",
    '{"word": "run", "definition": }',
    '{"word": "run"}',
    '{"word": "run", "definition": ""}',
])
def test_parse_rejects_malformed(text):
    with pytest.raises(GenerationError) as exc:
        parse_word_definition(text)
    assert exc.value.kind is GenerationErrorKind.DECODE_ERROR


def test_word_definition_populate_by_name():
    content = WordDefinition(word=" hi ", definition="greeting", short_definition="hello")
    assert content.word == "hi"
    assert content.short_definition == "hello"
    assert content.tags == []


def test_client_without_key_is_invalid_config():
    chat = OpenAIChatClient(_settings(openai_api_key=""))
    with pytest.raises(GenerationError) as exc:
        chat.complete("system", "prompt")
    assert exc.value.kind is GenerationErrorKind.INVALID_CONFIG


def test_client_returns_message_content():
    client = _client(_reply("  hello  "))
    chat = OpenAIChatClient(_settings(openai_api_key="sk-test", openai_model="test-model"), client=client)
    assert chat.complete("system", "prompt", max_tokens=50) == "hello"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["max_tokens"] == 50
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}


def test_client_empty_reply_is_decode_error():
    chat = OpenAIChatClient(_settings(openai_api_key="sk-test"), client=_client(_reply("")))
    with pytest.raises(GenerationError) as exc:
        chat.complete("system", "prompt")
    assert exc.value.kind is GenerationErrorKind.DECODE_ERROR


@pytest.mark.parametrize("error, kind", [
    (openai.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None),
     GenerationErrorKind.AUTH_REQUIRED),
    (openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None),
     GenerationErrorKind.RATE_LIMITED),
    (openai.APIConnectionError(request=REQUEST), GenerationErrorKind.NETWORK_ERROR),
    (openai.APITimeoutError(request=REQUEST), GenerationErrorKind.NETWORK_ERROR),
    (openai.InternalServerError("down", response=httpx.Response(503, request=REQUEST), body=None),
     GenerationErrorKind.SERVER_ERROR),
])
def test_client_maps_sdk_errors(error, kind):
    chat = OpenAIChatClient(_settings(openai_api_key="sk-test"), client=_client(error=error))
    with pytest.raises(GenerationError) as exc:
        chat.complete("system", "prompt")
    assert exc.value.kind is kind


def test_openai_content_generator():
    reply = '{"word": "gato", "definition": "a small domestic feline", "translation": "cat", "cefrLevel": "A1"}'
    chat = OpenAIChatClient(_settings(openai_api_key="sk-test"), client=_client(_reply(reply)))
    content = OpenAIContentGenerator(chat).generate("gato", "Spanish", "English")
    assert content.translation == "cat"
    assert content.cefr_level is CEFRLevel.A1


def test_local_generator_is_deterministic():
    gen = LocalContentGenerator()
    first = gen.generate("Harbor", "English", "Spanish")
    assert first == gen.generate("Harbor", "English", "Spanish")
    assert first.word == "Harbor"
    assert first.definition


def test_generate_word_content_falls_back():
    failing = Mock()
    failing.generate.side_effect = GenerationError(GenerationErrorKind.NETWORK_ERROR)
    content = generate_word_content("harbor", "English", "Spanish", failing)
    assert content.word == "harbor"
    assert "harbor" in content.definition


def test_generate_word_content_without_generator_is_local():
    content = generate_word_content("harbor", "English", "Spanish")
    assert content == LocalContentGenerator().generate("harbor", "English", "Spanish")


@pytest.mark.parametrize("tags", ["[1, 2]", "5", '{"topic": "sport"}', '["sport", null]'])
def test_parse_rejects_non_string_tags(tags):
    with pytest.raises(GenerationError) as exc:
        parse_word_definition(f'{{"word": "run", "definition": "move fast", "tags": {tags}}}')
    assert exc.value.kind is GenerationErrorKind.DECODE_ERROR


def test_generate_word_content_falls_back_on_bad_tags():
    chat = OpenAIChatClient(
        _settings(openai_api_key="sk-test"),
        client=_client(_reply('{"word": "run", "definition": "move fast", "tags": [1, 2]}')),
    )
    content = generate_word_content("run", "English", "Spanish", OpenAIContentGenerator(chat))
    assert content == LocalContentGenerator().generate("run", "English", "Spanish")
