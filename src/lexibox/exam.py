"""Multiple-choice exam questions and exam sessions."""
from __future__ import annotations

import json
import random
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol, Sequence

from loguru import logger
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from lexibox.constants import EXAM_OPTION_COUNT, HINT_MAX_LENGTH, PLACEHOLDER_DISTRACTORS
from lexibox.content import OpenAIChatClient, extract_json_object
from lexibox.errors import GenerationError, GenerationErrorKind, PersistenceError
from lexibox.models import (
    ExamQuestion, ExamSession, Flashcard, Outcome, QuestionKind, SessionMode, new_exam_session,
)
from lexibox.session import SessionController, SessionState
from lexibox.store import CardStore

WORD_PLACEHOLDERS = ["different", "other", "another", "alternative", "similar"]
BLANK = "______"


def cap_hint(hint: Optional[str]) -> Optional[str]:
    if not hint:
        return None
    hint = hint.strip()
    if len(hint) > HINT_MAX_LENGTH:
        return hint[:HINT_MAX_LENGTH - 3] + "..."
    return hint


def finalize_question(
    prompt_text: str,
    correct_answer: str,
    distractors: Iterable[str],
    card: Flashcard,
    kind: QuestionKind,
    hint: Optional[str] = None,
    placeholders: Sequence[str] = PLACEHOLDER_DISTRACTORS,
    rng: Optional[random.Random] = None,
) -> ExamQuestion:
    """Build a question with exactly four distinct options, one of them correct.

    Extra distractors are dropped, missing ones are filled from
    ``placeholders``; the options are shuffled and the correct index is
    looked up afterwards.
    """
    rng = rng or random.Random()
    correct_answer = correct_answer.strip()
    seen = {correct_answer.lower()}
    wrong: list[str] = []
    for option in [*distractors, *placeholders]:
        option = (option or "").strip()
        if option and option.lower() not in seen:
            seen.add(option.lower())
            wrong.append(option)
        if len(wrong) == EXAM_OPTION_COUNT - 1:
            break
    n = 1
    while len(wrong) < EXAM_OPTION_COUNT - 1:
        filler = f"Option {n}"
        if filler.lower() not in seen:
            seen.add(filler.lower())
            wrong.append(filler)
        n += 1

    options = [correct_answer, *wrong]
    rng.shuffle(options)
    return ExamQuestion(
        prompt_text=prompt_text,
        options=options,
        correct_option_index=options.index(correct_answer),
        source_card=card,
        kind=kind,
        hint=cap_hint(hint),
    )


class QuestionGenerator(Protocol):
    def generate_question(self, card: Flashcard, pool: Sequence[Flashcard], kind: QuestionKind) -> ExamQuestion:
        ...


def _meaning(card: Flashcard) -> str:
    return card.short_definition or card.definition or card.translation or card.word


def _blank_out(sentence: str, word: str) -> Optional[str]:
    pattern = re.compile(re.escape(word), re.IGNORECASE)
    if not pattern.search(sentence):
        return None
    return pattern.sub(BLANK, sentence)


class LocalQuestionGenerator:
    """Offline question builder. Always succeeds."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _others(self, card: Flashcard, pool: Sequence[Flashcard]) -> list[Flashcard]:
        others = [c for c in pool if c.id != card.id]
        self.rng.shuffle(others)
        return others

    def generate_question(self, card: Flashcard, pool: Sequence[Flashcard], kind: QuestionKind) -> ExamQuestion:
        if kind is QuestionKind.WORD_MOST_SIMILAR:
            return self.word_similar(card, pool)
        if kind is QuestionKind.CONTEXT_SCENARIO:
            return self.context_scenario(card, pool)
        if kind is QuestionKind.FILL_IN_BLANK:
            return self.fill_in_blank(card, pool)
        # No offline grouping for "which word is different"
        return self.definition(card, pool)

    def definition(self, card: Flashcard, pool: Sequence[Flashcard]) -> ExamQuestion:
        correct = card.definition or _meaning(card)
        distractors = [c.definition for c in self._others(card, pool) if c.definition]
        return finalize_question(
            f"What is the meaning of '{card.word}'?", correct, distractors, card,
            QuestionKind.DEFINITION, hint=f"'{card.word}' means: {_meaning(card)}.", rng=self.rng,
        )

    def word_similar(self, card: Flashcard, pool: Sequence[Flashcard]) -> ExamQuestion:
        distractors = [c.word for c in self._others(card, pool)]
        return finalize_question(
            f"Which word is closest in meaning to '{_meaning(card)}'?", card.word, distractors, card,
            QuestionKind.WORD_MOST_SIMILAR, hint=f"Look for the word that means '{_meaning(card)}'.",
            placeholders=WORD_PLACEHOLDERS, rng=self.rng,
        )

    def context_scenario(self, card: Flashcard, pool: Sequence[Flashcard]) -> ExamQuestion:
        scenario = _blank_out(card.example, card.word) if card.example else None
        if not scenario:
            scenario = f"In a situation where you need to express '{_meaning(card)}'"
        distractors = [c.word for c in self._others(card, pool)]
        return finalize_question(
            f"Which word would you use here: '{scenario}'?", card.word, distractors, card,
            QuestionKind.CONTEXT_SCENARIO,
            hint=f"Use '{card.word}' ({_meaning(card)}) in this scenario.",
            placeholders=WORD_PLACEHOLDERS, rng=self.rng,
        )

    def fill_in_blank(self, card: Flashcard, pool: Sequence[Flashcard]) -> ExamQuestion:
        sentence = _blank_out(card.example, card.word) if card.example else None
        if not sentence:
            sentence = f"{BLANK} means '{_meaning(card)}'."
        distractors = [c.word for c in self._others(card, pool)]
        return finalize_question(
            f"Complete the sentence: '{sentence}'", card.word, distractors, card,
            QuestionKind.FILL_IN_BLANK, hint=f"Fill the blank with '{card.word}' ({_meaning(card)}).",
            placeholders=WORD_PLACEHOLDERS, rng=self.rng,
        )


class QuestionPayload(BaseModel):
    """JSON shape expected from the AI question service."""

    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=1)
    correct_answer_index: int = Field(ge=0, alias="correctAnswerIndex")
    tip: Optional[str] = None

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}


def parse_question_payload(text: str) -> QuestionPayload:
    try:
        return QuestionPayload.model_validate(json.loads(extract_json_object(text)))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise GenerationError(GenerationErrorKind.DECODE_ERROR, str(e)) from e


QUESTION_SYSTEM_PROMPT = "You are an expert language tutor. Generate educational exam questions. Reply with JSON only."

KIND_INSTRUCTIONS = {
    QuestionKind.DEFINITION: "Ask for the meaning of '{word}' (definition: {definition}).",
    QuestionKind.WORD_DIFFERENT_FROM_GROUP: (
        "Create a 'which word is different' question where '{word}' (meaning: {definition}) is the "
        "different word and the other three options share a theme. Candidate words: {sample}."
    ),
    QuestionKind.WORD_MOST_SIMILAR: (
        "Ask which option is most similar in meaning to '{word}' (meaning: {definition}). "
        "The correct option must be a synonym, not '{word}' itself."
    ),
    QuestionKind.CONTEXT_SCENARIO: (
        "Describe a short real-life scenario and ask which word fits it; the answer is '{word}' "
        "(meaning: {definition})."
    ),
    QuestionKind.FILL_IN_BLANK: (
        "Write a sentence with a blank (______) that '{word}' fills; base it on: {example}."
    ),
}


class OpenAIQuestionGenerator:
    def __init__(self, chat: OpenAIChatClient):
        self.chat = chat

    def generate_question(self, card: Flashcard, pool: Sequence[Flashcard], kind: QuestionKind) -> ExamQuestion:
        sample = "; ".join(f"{c.word}: {c.short_definition or c.definition}" for c in list(pool)[:10])
        instruction = KIND_INSTRUCTIONS[kind].format(
            word=card.word, definition=card.definition, example=card.example or "(none)", sample=sample,
        )
        prompt = (
            f"{instruction}\n\n"
            "Respond with this JSON object:\n"
            '{"question": "...", "options": ["a", "b", "c", "d"], '
            '"correctAnswerIndex": 0, "tip": "short tip, under 40 words"}\n'
            "Exactly 4 options."
        )
        payload = parse_question_payload(self.chat.complete(QUESTION_SYSTEM_PROMPT, prompt, max_tokens=400))
        index = payload.correct_answer_index
        if index >= len(payload.options):
            raise GenerationError(
                GenerationErrorKind.DECODE_ERROR,
                f"correctAnswerIndex {index} out of range for {len(payload.options)} options",
            )
        correct = payload.options[index]
        distractors = [o for i, o in enumerate(payload.options) if i != index]
        return finalize_question(payload.question, correct, distractors, card, kind, hint=payload.tip)


class ExamQuestionGenerator:
    """Picks a question kind at random and falls back to local questions on failure."""

    def __init__(
        self,
        external: Optional[QuestionGenerator] = None,
        local: Optional[LocalQuestionGenerator] = None,
        rng: Optional[random.Random] = None,
    ):
        self.rng = rng or random.Random()
        self.external = external
        self.local = local or LocalQuestionGenerator(self.rng)

    def generate(self, card: Flashcard, pool: Sequence[Flashcard], kind: Optional[QuestionKind] = None) -> ExamQuestion:
        kind = kind or self.rng.choice(list(QuestionKind))
        if self.external is not None:
            try:
                return self.external.generate_question(card, pool, kind)
            except GenerationError as e:
                logger.warning("Question generation for '{}' failed ({}), using local question", card.word, e.kind.value)
        return self.local.generate_question(card, pool, kind)


@dataclass(frozen=True)
class ExamResult:
    question: ExamQuestion
    selected_index: int
    is_correct: bool


class ExamRunner:
    """Runs an exam on top of a Session Controller in exam mode.

    Scoring never touches card boxes. When the last question is answered one
    ExamSession record with the totals is stored.
    """

    def __init__(
        self,
        controller: SessionController,
        store: CardStore,
        generator: ExamQuestionGenerator,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.controller = controller
        self.store = store
        self.generator = generator
        self.clock = clock
        self.questions: list[ExamQuestion] = []
        self.results: list[ExamResult] = []
        self.exam_session: Optional[ExamSession] = None
        self.error: Optional[PersistenceError] = None

    def start(self, word_count: Optional[int] = None) -> int:
        pool = self.controller.engine.all_cards()
        if word_count is None:
            word_count = self.controller.exam_word_count
        count = min(max(word_count, 1), len(pool))
        selected = self.generator.rng.sample(pool, count)
        self.questions = [self.generator.generate(card, pool) for card in selected]
        self.results = []
        self.exam_session = None
        self.error = None
        self.controller.start(SessionMode.EXAM, lambda: [q.source_card for q in self.questions])
        return len(self.questions)

    @property
    def finished(self) -> bool:
        return self.controller.state is SessionState.COMPLETE

    def current_question(self) -> Optional[ExamQuestion]:
        if self.controller.current_card() is None:
            return None
        return self.questions[self.controller.index]

    def answer(self, selected_index: int) -> Optional[ExamResult]:
        question = self.current_question()
        if question is None or not 0 <= selected_index < len(question.options):
            return None
        is_correct = selected_index == question.correct_option_index
        result = ExamResult(question, selected_index, is_correct)
        self.results.append(result)
        self.controller.answer(Outcome.GOOD if is_correct else Outcome.HARD)
        if self.finished:
            self._save()
        return result

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.results if r.is_correct)

    def _save(self) -> None:
        stats = self.controller.stats
        session = new_exam_session(
            total_questions=len(self.results),
            correct_answers=self.correct_count,
            incorrect_answers=len(self.results) - self.correct_count,
            duration=stats.duration,
            now=self.clock(),
        )
        try:
            self.store.insert_exam_session(session)
        except PersistenceError as e:
            logger.error("Could not save exam results: {}", e)
            self.error = e
            return
        self.exam_session = session
        logger.info("Exam saved: {}/{} correct", session.correct_answers, session.total_questions)
