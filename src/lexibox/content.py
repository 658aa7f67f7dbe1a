"""Word content generation: AI service client, strict parsing and local fallback."""
from __future__ import annotations

import json
from typing import Optional, Protocol

from loguru import logger
from openai import (
    APIConnectionError, APIError, APIStatusError, APITimeoutError, AuthenticationError,
    OpenAI, PermissionDeniedError, RateLimitError,
)
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from lexibox.config import Settings
from lexibox.errors import GenerationError, GenerationErrorKind
from lexibox.models import CEFRLevel, normalize_tags

SYSTEM_PROMPT = (
    "You are an expert language tutor and vocabulary assistant. "
    "Generate flashcard content for language learning. Reply with JSON only."
)


class WordDefinition(BaseModel):
    """Content returned for a single word."""

    word: str = Field(min_length=1)
    definition: str = Field(min_length=1)
    short_definition: str = Field(default="", alias="shortDefinition")
    translation: str = ""
    example: str = ""
    phonetics: str = ""
    audio_url: Optional[str] = Field(default=None, alias="audioURL")
    cefr_level: Optional[CEFRLevel] = Field(default=None, alias="cefrLevel")
    tags: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    @field_validator("cefr_level", mode="before")
    @classmethod
    def _parse_cefr(cls, value):
        if isinstance(value, CEFRLevel) or value is None:
            return value
        return CEFRLevel.parse(str(value))

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)) or not all(isinstance(t, str) for t in value):
            raise ValueError("tags must be a list of strings or a comma-separated string")
        return normalize_tags(value)


def extract_json_object(text: str) -> str:
    """Slice the outermost ``{...}`` out of a model reply (handles code fences)."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise GenerationError(GenerationErrorKind.DECODE_ERROR, "No JSON object in response")
    return text[start:end + 1]


def parse_word_definition(text: str, fallback_word: str = "") -> WordDefinition:
    try:
        data = json.loads(extract_json_object(text))
    except json.JSONDecodeError as e:
        raise GenerationError(GenerationErrorKind.DECODE_ERROR, str(e)) from e
    if isinstance(data, dict) and not data.get("word") and fallback_word:
        data["word"] = fallback_word
    try:
        return WordDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise GenerationError(GenerationErrorKind.DECODE_ERROR, str(e)) from e


class ContentGenerator(Protocol):
    def generate(self, word: str, source_language: str, target_language: str) -> WordDefinition:
        ...


class OpenAIChatClient:
    """Thin wrapper over an OpenAI-compatible chat endpoint.

    Maps SDK exceptions onto :class:`GenerationErrorKind`.
    """

    def __init__(self, settings: Settings, client: Optional[OpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.ai_enabled:
                raise GenerationError(GenerationErrorKind.INVALID_CONFIG, "No API key configured")
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                timeout=self.settings.openai_timeout,
                max_retries=self.settings.openai_max_retries,
            )
        return self._client

    def complete(self, system: str, prompt: str, max_tokens: int = 500, temperature: float = 0.7) -> str:
        try:
            resp = self.client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            raise GenerationError(GenerationErrorKind.AUTH_REQUIRED, str(e)) from e
        except RateLimitError as e:
            raise GenerationError(GenerationErrorKind.RATE_LIMITED, str(e)) from e
        except (APITimeoutError, APIConnectionError) as e:
            raise GenerationError(GenerationErrorKind.NETWORK_ERROR, str(e)) from e
        except APIStatusError as e:
            kind = GenerationErrorKind.SERVER_ERROR if e.status_code >= 500 else GenerationErrorKind.DECODE_ERROR
            raise GenerationError(kind, str(e)) from e
        except APIError as e:
            raise GenerationError(GenerationErrorKind.SERVER_ERROR, str(e)) from e

        if not resp.choices:
            raise GenerationError(GenerationErrorKind.DECODE_ERROR, "Empty choices")
        content = (resp.choices[0].message.content or "").strip()
        if not content:
            raise GenerationError(GenerationErrorKind.DECODE_ERROR, "Empty content from model")
        return content


class OpenAIContentGenerator:
    def __init__(self, chat: OpenAIChatClient):
        self.chat = chat

    def generate(self, word: str, source_language: str, target_language: str) -> WordDefinition:
        prompt = (
            f'Generate a flashcard for the word "{word}" in {source_language} '
            f"with translation to {target_language}.\n"
            "Respond with this JSON object:\n"
            "{\n"
            f'  "word": "{word}",\n'
            f'  "definition": "A clear definition in {source_language}",\n'
            '  "shortDefinition": "A one-word or short phrase definition",\n'
            f'  "translation": "Translation to {target_language}",\n'
            '  "example": "A natural example sentence using the word",\n'
            '  "phonetics": "IPA transcription in /phonetics/ format",\n'
            '  "cefrLevel": "One of A1, A2, B1, B2, C1, C2",\n'
            '  "tags": ["2-3 short lowercase topic tags"]\n'
            "}"
        )
        text = self.chat.complete(SYSTEM_PROMPT, prompt)
        return parse_word_definition(text, fallback_word=word)


class LocalContentGenerator:
    """Deterministic offline content used when the AI service is unavailable."""

    def generate(self, word: str, source_language: str, target_language: str) -> WordDefinition:
        word = word.strip()
        return WordDefinition(
            word=word,
            definition=f"A {source_language} word: '{word}'. Add your own definition.",
            short_definition=word.lower(),
            translation=f"{word} ({target_language})",
            example=f"I learned the word '{word}' today.",
            phonetics=f"/{word.lower()}/",
        )


def generate_word_content(
    word: str,
    source_language: str,
    target_language: str,
    generator: Optional[ContentGenerator] = None,
    fallback: Optional[ContentGenerator] = None,
) -> WordDefinition:
    """Ask the AI generator, falling back to local content on any failure."""
    fallback = fallback or LocalContentGenerator()
    if generator is not None:
        try:
            return generator.generate(word, source_language, target_language)
        except GenerationError as e:
            logger.warning("Content generation for '{}' failed ({}), using local content", word, e.kind.value)
    return fallback.generate(word, source_language, target_language)
