import json
import random
from unittest.mock import Mock

import pytest

from lexibox.errors import GenerationError, GenerationErrorKind
from lexibox.exam import (
    ExamQuestionGenerator, ExamRunner, LocalQuestionGenerator, OpenAIQuestionGenerator,
    cap_hint, finalize_question, parse_question_payload,
)
from lexibox.models import QuestionKind, SessionMode
from lexibox.session import SessionState

from conftest import NOW


@pytest.fixture
def pool(make_card):
    return [
        make_card("apple", definition="a round fruit", example="She ate an apple."),
        make_card("river", definition="a large stream of water", example="We swam in the river."),
        make_card("brave", definition="showing courage", example="The brave dog barked."),
        make_card("quiet", definition="making little noise", example="The library is quiet."),
        make_card("window", definition="an opening in a wall", example="Open the window."),
    ]


def test_finalize_question_has_four_options(pool):
    q = finalize_question("Q?", "right", ["w1", "w2", "w3", "w4", "w5"], pool[0], QuestionKind.DEFINITION)
    assert len(q.options) == 4
    assert q.correct_answer == "right"
    assert "right" in q.options


def test_finalize_question_dedupes_case_insensitively(pool):
    q = finalize_question(
        "Q?", "Apple", ["apple", "Pear", "pear", "Plum"], pool[0], QuestionKind.DEFINITION,
        placeholders=[],
    )
    lowered = [o.lower() for o in q.options]
    assert len(set(lowered)) == 4
    assert sorted(lowered) == ["apple", "option 1", "pear", "plum"]
    assert q.correct_answer == "Apple"


def test_finalize_question_pads_with_placeholders(pool):
    q = finalize_question("Q?", "right", [], pool[0], QuestionKind.DEFINITION)
    assert len(q.options) == 4
    assert q.correct_answer == "right"


def test_finalize_question_last_resort_fillers(pool):
    q = finalize_question("Q?", "right", ["", "  "], pool[0], QuestionKind.DEFINITION, placeholders=[])
    assert sorted(q.options) == ["Option 1", "Option 2", "Option 3", "right"]


def test_finalize_question_shuffles_correct_position(pool):
    rng = random.Random(7)
    positions = {
        finalize_question("Q?", "right", ["a", "b", "c"], pool[0], QuestionKind.DEFINITION, rng=rng)
        .correct_option_index
        for _ in range(100)
    }
    assert len(positions) > 1


def test_cap_hint():
    assert cap_hint(None) is None
    assert cap_hint("") is None
    assert cap_hint("short tip") == "short tip"
    exact = "x" * 150
    assert cap_hint(exact) == exact
    long = cap_hint("y" * 200)
    assert len(long) == 150
    assert long.endswith("...")
    assert long.startswith("y" * 147)


@pytest.mark.parametrize("kind", list(QuestionKind))
def test_local_questions_are_well_formed(pool, kind):
    generator = LocalQuestionGenerator(random.Random(3))
    for _ in range(100):
        card = random.choice(pool)
        q = generator.generate_question(card, pool, kind)
        assert len(q.options) == 4
        assert len({o.lower() for o in q.options}) == 4
        assert 0 <= q.correct_option_index < 4
        assert q.source_card is card
        assert q.hint is None or len(q.hint) <= 150


def test_local_definition_question(pool):
    q = LocalQuestionGenerator().generate_question(pool[0], pool, QuestionKind.DEFINITION)
    assert q.correct_answer == "a round fruit"
    assert "apple" in q.prompt_text


def test_local_word_different_falls_back_to_definition(pool):
    q = LocalQuestionGenerator().generate_question(pool[1], pool, QuestionKind.WORD_DIFFERENT_FROM_GROUP)
    assert q.kind is QuestionKind.DEFINITION
    assert q.correct_answer == "a large stream of water"


def test_local_fill_in_blank_hides_word(pool):
    q = LocalQuestionGenerator().generate_question(pool[2], pool, QuestionKind.FILL_IN_BLANK)
    assert q.correct_answer == "brave"
    assert "brave" not in q.prompt_text.lower()
    assert "______" in q.prompt_text


def test_local_question_without_pool_uses_placeholder_words(pool):
    card = pool[0]
    q = LocalQuestionGenerator().generate_question(card, [card], QuestionKind.WORD_MOST_SIMILAR)
    assert q.correct_answer == "apple"
    assert len(q.options) == 4


def test_external_generator_used_when_available(pool):
    expected = finalize_question("ext?", "right", ["a", "b", "c"], pool[0], QuestionKind.DEFINITION)
    external = Mock()
    external.generate_question.return_value = expected
    generator = ExamQuestionGenerator(external, rng=random.Random(1))
    assert generator.generate(pool[0], pool, QuestionKind.DEFINITION) is expected


def test_falls_back_to_local_on_generation_error(pool):
    external = Mock()
    external.generate_question.side_effect = GenerationError(GenerationErrorKind.RATE_LIMITED)
    generator = ExamQuestionGenerator(external, rng=random.Random(1))
    q = generator.generate(pool[0], pool, QuestionKind.FILL_IN_BLANK)
    assert q.kind is QuestionKind.FILL_IN_BLANK
    assert q.correct_answer == "apple"
    external.generate_question.assert_called_once()


def test_parse_question_payload_accepts_fenced_json():
    text = '```json\n{"question": "Q?", "options": ["a", "b"], "correctAnswerIndex": 1, "tip": "t"}\n```'
    payload = parse_question_payload(text)
    assert payload.question == "Q?"
    assert payload.correct_answer_index == 1


@pytest.mark.parametrize("text", [
    "no json here",
    '{"question": "Q?", "options": [], "correctAnswerIndex": 0}',
    '{"question": "Q?", "options": ["a"], "correctAnswerIndex": -1}',
    '{"question": "Q?", "options": ["a", "b"]',
])
def test_parse_question_payload_rejects_malformed(text):
    with pytest.raises(GenerationError) as exc:
        parse_question_payload(text)
    assert exc.value.kind is GenerationErrorKind.DECODE_ERROR


def test_openai_question_generator_normalises_payload(pool):
    chat = Mock()
    chat.complete.return_value = json.dumps({
        "question": "Which is a fruit?",
        "options": ["car", "dog", "sky", "sun", "apple"],
        "correctAnswerIndex": 4,
        "tip": "z" * 300,
    })
    q = OpenAIQuestionGenerator(chat).generate_question(pool[0], pool, QuestionKind.DEFINITION)
    assert len(q.options) == 4
    assert q.correct_answer == "apple"
    assert len(q.hint) == 150


def test_openai_question_generator_pads_short_options(pool):
    chat = Mock()
    chat.complete.return_value = '{"question": "Q?", "options": ["yes", "no"], "correctAnswerIndex": 0}'
    q = OpenAIQuestionGenerator(chat).generate_question(pool[0], pool, QuestionKind.CONTEXT_SCENARIO)
    assert len(q.options) == 4
    assert q.correct_answer == "yes"
    assert q.hint is None


@pytest.fixture
def runner(controller, store):
    return ExamRunner(controller, store, ExamQuestionGenerator(rng=random.Random(5)), clock=lambda: NOW)


def test_exam_runner_full_exam(runner, store, pool):
    assert runner.start(3) == 3
    assert runner.controller.mode is SessionMode.EXAM
    answers = []
    while (q := runner.current_question()) is not None:
        pick = q.correct_option_index if len(answers) < 2 else (q.correct_option_index + 1) % 4
        answers.append(runner.answer(pick))
    assert [r.is_correct for r in answers] == [True, True, False]
    assert runner.finished
    assert runner.correct_count == 2

    sessions = store.fetch_exam_sessions()
    assert len(sessions) == 1
    assert sessions[0].total_questions == 3
    assert sessions[0].correct_answers == 2
    assert sessions[0].incorrect_answers == 1
    assert runner.exam_session.id == sessions[0].id


def test_exam_never_changes_boxes(runner, store, pool):
    runner.start(5)
    while (q := runner.current_question()) is not None:
        runner.answer(q.correct_option_index)
    assert all(store.get_card(c.id).box == 1 for c in pool)
    assert all(store.get_card(c.id).study_count == 0 for c in pool)


def test_exam_points_without_streak(runner, store, pool):
    runner.start(2)
    q = runner.current_question()
    runner.answer(q.correct_option_index)
    q = runner.current_question()
    runner.answer((q.correct_option_index + 1) % 4)
    user = store.get_or_create_user()
    assert user.total_points == 15
    assert user.streak_count == 0


def test_exam_runner_ignores_invalid_index(runner, pool):
    runner.start(2)
    assert runner.answer(7) is None
    assert runner.answer(-1) is None
    assert runner.controller.index == 0
    assert runner.results == []


def test_exam_runner_caps_word_count(runner, pool):
    assert runner.start(50) == len(pool)


def test_exam_runner_empty_store(runner):
    assert runner.start() == 0
    assert runner.current_question() is None
    assert runner.controller.state is SessionState.COMPLETE


def test_openai_question_generator_rejects_out_of_range_index(pool):
    chat = Mock()
    chat.complete.return_value = json.dumps({
        "question": "Which is a fruit?",
        "options": ["a car", "a dog", "a round fruit", "a cloud"],
        "correctAnswerIndex": 7,
    })
    with pytest.raises(GenerationError) as exc:
        OpenAIQuestionGenerator(chat).generate_question(pool[0], pool, QuestionKind.DEFINITION)
    assert exc.value.kind is GenerationErrorKind.DECODE_ERROR


def test_out_of_range_index_falls_back_to_local_question(pool):
    chat = Mock()
    chat.complete.return_value = (
        '{"question": "Q?", "options": ["a car", "a dog", "a round fruit", "a cloud"], "correctAnswerIndex": 4}'
    )
    generator = ExamQuestionGenerator(OpenAIQuestionGenerator(chat), rng=random.Random(2))
    q = generator.generate(pool[0], pool, QuestionKind.DEFINITION)
    assert q.correct_answer == "a round fruit"
    assert q.prompt_text == "What is the meaning of 'apple'?"


@pytest.mark.parametrize("word_count", [0, -3])
def test_exam_runner_asks_at_least_one_question(runner, pool, word_count):
    assert runner.start(word_count) == 1
    assert runner.current_question() is not None
