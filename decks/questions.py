"""Study-question generation from flashcards via the configured language model."""

import json
import logging
from typing import Any, Dict, Iterable, List

from flashcards_backend.llm_client import call_llm

from .models import Flashcard

logger = logging.getLogger(__name__)

QUESTION_TYPES = ("multiple_choice", "true_false", "fill_blank")

_FORMATS = {
    "multiple_choice": (
        "For each question, provide 4 options (A, B, C, D) with exactly one correct answer. "
        'Reply with a JSON object: {"questions": [{"question": "...", '
        '"options": ["A: ...", "B: ...", "C: ...", "D: ..."], "correctAnswer": "A", '
        '"explanation": "..."}]}'
    ),
    "true_false": (
        'Reply with a JSON object: {"questions": [{"question": "...", '
        '"correctAnswer": true, "explanation": "..."}]}'
    ),
    "fill_blank": (
        "Use ___ for blanks. "
        'Reply with a JSON object: {"questions": [{"question": "...", '
        '"correctAnswer": "...", "explanation": "..."}]}'
    ),
}


class QuestionGenerationError(Exception):
    """Raised when study questions cannot be generated or parsed."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


def _describe_cards(cards: Iterable[Flashcard]) -> str:
    return "\n\n".join(f"Term: {card.term}\nDefinition: {card.definition}" for card in cards)


def build_messages(cards: List[Flashcard], count: int, question_type: str) -> List[Dict[str, str]]:
    label = question_type.replace("_", " ")
    sys_prompt = (
        "You are an expert educational assistant that writes high-quality study questions. "
        f"Generate {count} {label} questions based on the provided flashcards. "
        "Make questions challenging but fair, testing understanding rather than mere memorization."
    )
    user_prompt = (
        f"Generate {count} {label} questions based on these flashcards:\n\n"
        f"{_describe_cards(cards)}\n\n{_FORMATS[question_type]}"
    )
    return [
        {"role": "system", "content": sys_prompt},
        {"role": "user", "content": user_prompt},
    ]


def parse_questions(answer: str, question_type: str) -> List[Dict[str, Any]]:
    try:
        decoded = json.loads(answer)
    except json.JSONDecodeError as exc:
        raise QuestionGenerationError(f"Failed to parse generated questions: {exc}") from exc

    questions = decoded.get("questions") if isinstance(decoded, dict) else decoded
    if not isinstance(questions, list):
        raise QuestionGenerationError("Generated questions are not a list.")

    for question in questions:
        if not isinstance(question, dict):
            raise QuestionGenerationError("Each generated question must be an object.")
        if not all(key in question for key in ("question", "correctAnswer")):
            raise QuestionGenerationError("One or more questions are missing required keys.")
        if question_type == "multiple_choice":
            options = question.get("options")
            if not isinstance(options, list) or len(options) != 4:
                raise QuestionGenerationError("Multiple choice questions need exactly 4 options.")
        if question_type == "true_false" and not isinstance(question["correctAnswer"], bool):
            raise QuestionGenerationError("True/false answers must be booleans.")
    return questions


def generate_questions(
    cards: List[Flashcard],
    count: int = 5,
    question_type: str = "multiple_choice",
) -> List[Dict[str, Any]]:
    """Ask the language model for `count` questions of `question_type` about `cards`."""

    if question_type not in QUESTION_TYPES:
        raise QuestionGenerationError(
            f"question_type must be one of: {', '.join(QUESTION_TYPES)}.", status_code=400
        )
    if not cards:
        raise QuestionGenerationError("The flashcard set has no cards.", status_code=400)

    llm_response = call_llm(
        build_messages(cards, count, question_type),
        response_format={"type": "json_object"},
    )
    if not llm_response.get("success"):
        message = llm_response.get("error") or "Language model service is unavailable."
        logger.warning("Question generation failed: %s", message)
        raise QuestionGenerationError(message, status_code=llm_response.get("status_code", 502))

    return parse_questions(llm_response.get("content", ""), question_type)
