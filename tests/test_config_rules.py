from dataclasses import replace

from quizforge.engine.config_rules import (
    base_test_name,
    configs_equivalent,
    default_test_name,
    next_retake_name,
)
from quizforge.engine.models import (
    LanguageOption,
    NegativeMarkingSettings,
    TestInputMethod,
    TimeSettings,
)

from conftest import make_config, make_entry


def _document_config(**kwargs):
    values = dict(
        method=TestInputMethod.DOCUMENT,
        content="UEsDBA==",
        num_questions=0,
        mime_type="application/pdf",
        original_file_name="chapter1.pdf",
    )
    values.update(kwargs)
    return make_config(**values)


def test_name_only_difference_is_equivalent() -> None:
    prev = make_config(test_name="First")
    assert configs_equivalent(prev, replace(prev, test_name="Second"))


def test_tita_flag_is_not_compared() -> None:
    prev = make_config()
    assert configs_equivalent(prev, replace(prev, tita_enabled=True))


def test_topic_source_fields_are_compared() -> None:
    prev = make_config(difficulty_level=2, custom_instructions="short")
    assert not configs_equivalent(prev, replace(prev, content="Mitosis"))
    assert not configs_equivalent(prev, replace(prev, num_questions=7))
    assert not configs_equivalent(prev, replace(prev, difficulty_level=3))
    assert not configs_equivalent(prev, replace(prev, custom_instructions=None))
    assert not configs_equivalent(
        prev, replace(prev, selected_language=LanguageOption.HINDI)
    )


def test_input_method_must_match() -> None:
    prev = make_config(method=TestInputMethod.TOPIC)
    assert not configs_equivalent(prev, replace(prev, input_method=TestInputMethod.SYLLABUS))


def test_document_ignores_question_count() -> None:
    prev = _document_config()
    assert configs_equivalent(prev, replace(prev, num_questions=15))
    assert not configs_equivalent(prev, replace(prev, original_file_name="other.pdf"))
    assert not configs_equivalent(prev, replace(prev, content="UEsDBB=="))


def test_time_and_marking_rules_must_match() -> None:
    timed = make_config(time_settings=TimeSettings.timed(600))
    assert not configs_equivalent(timed, replace(timed, time_settings=TimeSettings.timed(300)))
    assert not configs_equivalent(timed, replace(timed, time_settings=TimeSettings.untimed()))

    marked = make_config(negative_marking=NegativeMarkingSettings(True, 0.25))
    assert not configs_equivalent(
        marked, replace(marked, negative_marking=NegativeMarkingSettings(True, 0.5))
    )
    assert not configs_equivalent(marked, replace(marked, negative_marking=NegativeMarkingSettings()))


def test_default_names() -> None:
    assert default_test_name(make_config(method=TestInputMethod.TOPIC)) == "Topic-based Test"
    assert default_test_name(make_config(method=TestInputMethod.SYLLABUS)) == "Syllabus-based Test"
    assert default_test_name(_document_config(original_file_name="notes.v2.docx")) == "notes.v2"
    assert default_test_name(_document_config(original_file_name="README")) == "README"
    assert default_test_name(_document_config(original_file_name=None)) == "Test from document"


def test_base_name_strips_retake_suffix() -> None:
    assert base_test_name("Midterm - Retake 3") == "Midterm"
    assert base_test_name("Midterm") == "Midterm"


def test_retake_name_counts_earlier_attempts() -> None:
    original = make_entry("s1", test_name="Midterm")
    retake = make_entry("s2", test_name="Midterm - Retake 1")
    other = make_entry("s3", test_name="Final")
    history = [retake, other, original]

    assert next_retake_name(original, history) == "Midterm - Retake 2"
    assert next_retake_name(other, history) == "Final - Retake 1"


def test_retake_name_of_only_entry() -> None:
    entry = make_entry("s1", test_name="Quiz")
    assert next_retake_name(entry, [entry]) == "Quiz - Retake 1"
