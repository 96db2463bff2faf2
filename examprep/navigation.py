"""
Legacy quiz routes (/quiz/practice, /quiz/cbt style links with ?subject=&year=&type=).
Rebuilds a QuizConfig from the query parameters and decides whether to go straight
into the quiz or fall back to the manual configuration wizard.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from engine import DEFAULT_EXAM_TYPE_PRIORITY
from examprep.database import QuestionStoreError
from examprep.models import SelectionMethod
from examprep.quiz_config import EXAM_TYPES, QuizConfig, validate_config

logger = logging.getLogger(__name__)

ALL_SENTINEL = "ALL"


class RedirectAction(str, Enum):
    PROCEED = "proceed"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class LegacyQuizParams:
    subject: Optional[str] = None
    year: Optional[int] = None
    type: Optional[str] = None


@dataclass(frozen=True)
class RedirectDecision:
    action: RedirectAction
    config: Optional[QuizConfig] = None
    reason: Optional[str] = None

    @property
    def proceed(self) -> bool:
        return self.action == RedirectAction.PROCEED


def _first(value: Any) -> Optional[str]:
    """Query mappings may hold a single string or a list of them."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_legacy_params(query: Mapping[str, Any]) -> LegacyQuizParams:
    """
    Extract subject, year and type from legacy query parameters.

    "ALL", empty and missing all mean "not specified". A non-numeric year or an
    unknown exam type is dropped rather than rejected.
    """
    subject = _first(query.get("subject"))

    year = None
    year_raw = _first(query.get("year"))
    if year_raw and year_raw.upper() != ALL_SENTINEL:
        try:
            year = int(year_raw)
        except ValueError:
            logger.debug(f"Ignoring non-numeric year {year_raw!r}")

    exam_type = None
    type_raw = _first(query.get("type"))
    if type_raw and type_raw.upper() != ALL_SENTINEL and type_raw.upper() in EXAM_TYPES:
        exam_type = type_raw.upper()

    return LegacyQuizParams(subject=subject, year=year, type=exam_type)


def pick_exam_type(supported: Sequence[str], priority: Sequence[str] = DEFAULT_EXAM_TYPE_PRIORITY) -> Optional[str]:
    """First exam type in priority order that the subject supports."""
    for exam_type in priority:
        if exam_type in supported:
            return exam_type
    for exam_type in supported:
        if exam_type in EXAM_TYPES:
            return exam_type
    return None


def _fallback(reason: str) -> RedirectDecision:
    logger.info(f"Legacy route falls back to manual configuration: {reason}")
    return RedirectDecision(action=RedirectAction.FALLBACK, reason=reason)


def resolve_legacy_route(
    mode: str,
    params: LegacyQuizParams,
    store,
    priority: Sequence[str] = DEFAULT_EXAM_TYPE_PRIORITY,
) -> RedirectDecision:
    """
    Decide where a legacy quiz link should land.

    Only reads the store when the link carries no valid exam type. Never raises:
    every failure becomes a FALLBACK decision.
    """
    if not params.subject:
        return _fallback("no subject in link")

    exam_type = params.type if params.type in EXAM_TYPES else None
    if exam_type is None:
        try:
            subject = store.find_subject_by_slug(params.subject)
        except QuestionStoreError as e:
            return _fallback(f"subject lookup failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error looking up {params.subject}: {e}")
            return _fallback("subject lookup failed")
        if subject is None:
            return _fallback(f"subject {params.subject!r} not found")
        exam_type = pick_exam_type(subject.supported_exam_types(), priority)
        if exam_type is None:
            return _fallback(f"subject {params.subject!r} has no usable exam type")

    try:
        config = QuizConfig(
            exam_type=exam_type,
            mode=mode,
            selection_method=SelectionMethod.SUBJECT,
            subject_slug=params.subject,
            year=params.year,
        )
    except Exception as e:
        return _fallback(f"could not build config: {e}")

    error = validate_config(config)
    if error:
        return _fallback(error)

    logger.info(f"Legacy route resolved: {config.mode} {config.exam_type} {config.subject_slug} year={config.year}")
    return RedirectDecision(action=RedirectAction.PROCEED, config=config)


def parse_priority(order: Sequence[str]) -> tuple:
    """Keep only known exam types, preserving order; default when nothing usable remains."""
    cleaned = tuple(t for t in (str(o).upper() for o in order) if t in EXAM_TYPES)
    return cleaned or DEFAULT_EXAM_TYPE_PRIORITY
