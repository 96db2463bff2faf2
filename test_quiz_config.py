"""Tests for quiz configuration: validation, predicates, labels and initial state."""
import time
from dataclasses import replace
from datetime import date

import pytest

from examprep.models import ClassCategory, ExamType, QuizMode, SelectionMethod
from examprep.quiz_config import (
    QuizConfig,
    create_exam_config,
    create_initial_state,
    create_practice_config,
    get_exam_type_label,
    get_mode_label,
    get_quiz_mode_identifier,
    is_category_based,
    is_exam_mode,
    is_practice_mode,
    is_subject_based,
    is_year_based,
    validate_config,
)

TODAY = date(2026, 10, 19)

VALID_CONFIGS = [
    create_practice_config("JAMB", "subject", subject_slug="mathematics"),
    create_exam_config("WAEC", "year", year=2023),
    create_exam_config(ExamType.JAMB, SelectionMethod.SUBJECT, subject_slug="physics", year=2000),
    create_practice_config(
        "WAEC", "category", class_category="SCIENCE", subject_slugs=["physics", "chemistry"]
    ),
    create_exam_config("JAMB", "year", year=TODAY.year),
]


def test_scenario_a_practice_subject_config():
    config = create_practice_config("JAMB", "subject", subject_slug="mathematics")
    assert validate_config(config) is None

    state = create_initial_state(config)
    assert state.time_remaining is None
    assert state.show_explanations is True
    assert state.completed is False
    assert state.current_index == 0
    assert state.answers == {}
    assert state.timer_handle is None
    assert state.config is config


def test_scenario_b_exam_year_config():
    config = create_exam_config("WAEC", "year", year=2023)
    assert validate_config(config) is None

    state = create_initial_state(config)
    assert state.time_remaining == 0
    assert state.show_explanations is False


def test_initial_state_start_time_is_now_in_ms():
    before = int(time.time() * 1000)
    state = create_initial_state(VALID_CONFIGS[0])
    after = int(time.time() * 1000)
    assert before <= state.start_time <= after


@pytest.mark.parametrize("config", VALID_CONFIGS)
def test_validation_is_idempotent_for_valid_configs(config):
    assert validate_config(config, today=TODAY) is None
    rebuilt = QuizConfig(**config.to_dict())
    assert rebuilt == config
    assert validate_config(rebuilt, today=TODAY) is None
    assert validate_config(rebuilt, today=TODAY) is None


@pytest.mark.parametrize("slug", [None, ""])
def test_subject_method_requires_slug(slug):
    config = QuizConfig(exam_type="JAMB", mode="practice", selection_method="subject", subject_slug=slug)
    message = validate_config(config)
    assert message is not None
    assert "Subject slug" in message


def test_year_method_requires_year():
    config = QuizConfig(exam_type="JAMB", mode="exam", selection_method="year")
    assert validate_config(config) == "Year is required for year-based quizzes."


@pytest.mark.parametrize(
    "config, expected",
    [
        (QuizConfig("NECO", "practice", "subject", subject_slug="x"), "Invalid exam type. Must be JAMB or WAEC."),
        (QuizConfig("JAMB", "timed", "subject", subject_slug="x"), "Invalid mode. Must be practice or exam."),
        (
            QuizConfig("JAMB", "exam", "topic", subject_slug="x"),
            "Invalid selection method. Must be subject, year, or category.",
        ),
        (
            QuizConfig("JAMB", "exam", "category", subject_slugs=("physics",)),
            "Class category is required for category-based quizzes.",
        ),
        (
            QuizConfig("JAMB", "exam", "category", class_category="TECHNICAL", subject_slugs=("physics",)),
            "Invalid class category. Must be SCIENCE, ARTS, or COMMERCIAL.",
        ),
        (
            QuizConfig("JAMB", "exam", "category", class_category=ClassCategory.ARTS),
            "Subject slugs are required for category-based quizzes.",
        ),
    ],
)
def test_specific_message_per_rule(config, expected):
    assert validate_config(config) == expected


@pytest.mark.parametrize("year", [1999, 1970, TODAY.year + 1, 3000])
@pytest.mark.parametrize(
    "base",
    [
        create_practice_config("JAMB", "subject", subject_slug="mathematics"),
        create_exam_config("WAEC", "year", year=2020),
        create_practice_config("JAMB", "category", class_category="ARTS", subject_slugs=["literature"]),
    ],
)
def test_out_of_range_year_rejected_for_every_method(base, year):
    config = replace(base, year=year)
    message = validate_config(config, today=TODAY)
    assert message == f"Invalid year. Must be between 2000 and {TODAY.year}."


def test_upper_year_bound_follows_today():
    config = create_exam_config("JAMB", "year", year=2027)
    assert validate_config(config, today=TODAY) is not None
    assert validate_config(config, today=date(2027, 1, 1)) is None


def test_predicates():
    practice = create_practice_config("JAMB", "subject", subject_slug="mathematics")
    exam = create_exam_config("WAEC", "year", year=2022)
    category = create_exam_config("WAEC", "category", class_category="SCIENCE", subject_slugs=["physics"])

    assert is_practice_mode(practice) and not is_exam_mode(practice)
    assert is_exam_mode(exam) and not is_practice_mode(exam)
    assert is_subject_based(practice) and not is_year_based(practice)
    assert is_year_based(exam) and not is_subject_based(exam)
    assert is_category_based(category)


def test_labels():
    assert get_mode_label("practice") == "Practice"
    assert get_mode_label(QuizMode.EXAM) == "Exam Simulation"
    assert get_exam_type_label(ExamType.WAEC) == "WAEC"
    assert get_exam_type_label("JAMB") == "JAMB"


def test_enum_members_are_stored_as_strings():
    config = create_exam_config(ExamType.JAMB, SelectionMethod.YEAR, year=2021)
    assert config.exam_type == "JAMB"
    assert type(config.mode) is str
    assert config.mode == QuizMode.EXAM


def test_mode_identifier_format():
    assert get_quiz_mode_identifier(VALID_CONFIGS[0]) == "practice-subject"
    assert get_quiz_mode_identifier(VALID_CONFIGS[1]) == "exam-year"
    assert get_quiz_mode_identifier(create_exam_config(ExamType.WAEC, SelectionMethod.CATEGORY)) == "exam-category"


@pytest.mark.parametrize("slug, year", [("mathematics", None), ("physics", 2021), (None, 2010), ("biology", 2000)])
def test_mode_identifier_ignores_subject_and_year(slug, year):
    config = create_exam_config("JAMB", "subject", subject_slug=slug, year=year)
    assert get_quiz_mode_identifier(config) == "exam-subject"


def test_factories_pass_through_fields():
    config = create_practice_config("WAEC", "category", class_category="COMMERCIAL", subject_slugs=["accounting"])
    assert config.mode == "practice"
    assert config.exam_type == "WAEC"
    assert config.selection_method == "category"
    assert config.class_category == "COMMERCIAL"
    assert config.subject_slugs == ("accounting",)
    assert config.subject_slug is None and config.year is None


def test_config_is_immutable():
    config = VALID_CONFIGS[0]
    with pytest.raises(AttributeError):
        config.mode = "exam"
