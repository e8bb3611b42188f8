"""Rules over test configurations: regeneration skipping and test naming."""
from __future__ import annotations

from typing import Iterable

from quizforge.engine.models import HistoryEntry, TestConfig, TestInputMethod

RETAKE_SEPARATOR = " - Retake "


def _same_source(prev: TestConfig, new: TestConfig) -> bool:
    if prev.input_method != new.input_method:
        return False
    if prev.input_method == TestInputMethod.DOCUMENT:
        return (
            prev.original_file_name == new.original_file_name
            and prev.mime_type == new.mime_type
            and prev.selected_language == new.selected_language
            and prev.content == new.content
        )
    return (
        prev.content == new.content
        and prev.num_questions == new.num_questions
        and prev.difficulty_level == new.difficulty_level
        and prev.selected_language == new.selected_language
        and prev.custom_instructions == new.custom_instructions
    )


def _same_rules(prev: TestConfig, new: TestConfig) -> bool:
    prev_time, new_time = prev.time_settings, new.time_settings
    if prev_time.type != new_time.type:
        return False
    if prev_time.is_timed and prev_time.total_seconds != new_time.total_seconds:
        return False
    return (
        prev.negative_marking.enabled == new.negative_marking.enabled
        and prev.negative_marking.marks_per_question
        == new.negative_marking.marks_per_question
    )


def configs_equivalent(prev: TestConfig, new: TestConfig) -> bool:
    """
    True when questions generated for ``prev`` can be reused for ``new``.

    Documents compare file identity, language and content; syllabus and
    topic runs compare content, count, difficulty, language and custom
    instructions. Time and negative-marking settings must match for every
    method. test_name and tita_enabled are not compared.
    """
    return _same_source(prev, new) and _same_rules(prev, new)


def default_test_name(config: TestConfig) -> str:
    method = config.input_method
    if method == TestInputMethod.DOCUMENT and config.original_file_name:
        name = config.original_file_name
        stem = ".".join(name.split(".")[:-1])
        return stem or name
    if method == TestInputMethod.SYLLABUS:
        return "Syllabus-based Test"
    if method == TestInputMethod.TOPIC:
        return "Topic-based Test"
    return f"Test from {method.value}"


def base_test_name(name: str) -> str:
    return name.split(RETAKE_SEPARATOR)[0]


def next_retake_name(entry: HistoryEntry, history: Iterable[HistoryEntry]) -> str:
    """
    "<base> - Retake N", N being one more than the number of other
    history entries that share the base name.
    """
    base = base_test_name(entry.test_name)
    retakes = sum(
        1
        for other in history
        if other.id != entry.id
        and base_test_name(other.original_config.test_name) == base
    )
    return f"{base}{RETAKE_SEPARATOR}{retakes + 1}"
