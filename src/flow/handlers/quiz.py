"""
Quiz node handler.

Grades multiple choice, true/false and short answer questions by
normalized string equality (case and whitespace insensitive). Every
configured question must be answered before the quiz is graded.

Answers are kept in the session under "<node_id>:<question_id>" so two
quizzes with the same question ids never share answers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.flow.graph import Node, NodeType
from src.flow.session import PerformanceRecord, SessionState

from . import register
from .base import ActionKind, HandlerContext, LearnerAction, StepResult, node_float, node_points, now_iso

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")

_TRUE_FALSE_ALIASES = {"t": "true", "f": "false"}


def normalize_answer(value: Any) -> str:
    """Case-fold and collapse whitespace."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return " ".join(str(value).split()).casefold()


def question_id(question: dict, index: int) -> str:
    return str(question.get("id") or f"q{index + 1}")


def quiz_questions(node: Node) -> list[dict]:
    questions = node.config.get("questions") or []
    return [q for q in questions if isinstance(q, dict)]


def expected_answers(question: dict) -> set[str]:
    """All normalized answers accepted for a question."""
    qtype = question.get("type", "short_answer")
    correct = question.get("correct_answer")
    options = question.get("options") or []

    accepted: set[str] = set()
    if qtype == "multiple_choice" and isinstance(correct, int) and not isinstance(correct, bool):
        # Index into the options list
        if 0 <= correct < len(options):
            option = options[correct]
            accepted.add(normalize_answer(option.get("text", "") if isinstance(option, dict) else option))
        accepted.add(str(correct))
    elif correct is not None:
        accepted.add(normalize_answer(correct))

    for alt in question.get("accepted_answers") or []:
        accepted.add(normalize_answer(alt))
    return accepted


def grade_question(question: dict, answer: Any) -> bool:
    given = normalize_answer(answer)
    if question.get("type") == "true_false":
        given = _TRUE_FALSE_ALIASES.get(given, given)
    return given in expected_answers(question)


@dataclass
class QuizGrade:
    correct: int
    total: int
    missing: list[str] = field(default_factory=list)
    results: dict[str, bool] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.missing

    @property
    def percent(self) -> float:
        # A quiz without questions has nothing to get wrong
        if self.total == 0:
            return 100.0
        return round(self.correct / self.total * 100, 2)


def grade_quiz(questions: list[dict], answers: dict[str, Any]) -> QuizGrade:
    """Grade answers keyed by question id."""
    grade = QuizGrade(correct=0, total=len(questions))
    for index, question in enumerate(questions):
        qid = question_id(question, index)
        answer = answers.get(qid)
        if answer is None or not str(answer).strip():
            grade.missing.append(qid)
            continue
        ok = grade_question(question, answer)
        grade.results[qid] = ok
        grade.correct += int(ok)
    return grade


@register(NodeType.QUIZ)
class QuizHandler:
    """Handler for quiz nodes."""

    async def handle(self, node: Node, action: LearnerAction, session: SessionState, ctx: HandlerContext) -> StepResult:
        if action.kind == ActionKind.ANSWER:
            return StepResult(quiz_answers=self._scoped(node, action.answers))

        if action.kind not in (ActionKind.SUBMIT, ActionKind.CONTINUE):
            return StepResult.reject("Submit your quiz answers to continue.")

        questions = quiz_questions(node)
        answers = self._stored(node, session)
        answers.update({k: v for k, v in action.answers.items() if v is not None})

        grade = grade_quiz(questions, answers)
        if not grade.complete:
            count = len(grade.missing)
            return StepResult.reject(
                f"Please answer all questions ({count} missing).",
                telemetry={"missing": grade.missing},
            )

        percent = grade.percent
        points = node_points(node)
        score_delta = round(points * percent / 100, 2) if points else percent
        passing = node_float(node, "passing_score", 70.0)

        return StepResult(
            advance=True,
            score_delta=score_delta,
            performance=PerformanceRecord(
                node_id=node.id,
                node_type=node.type.value,
                score=percent,
                timestamp=now_iso(),
                response=answers,
            ),
            quiz_answers=self._scoped(node, answers),
            telemetry={
                "score": percent,
                "correct": grade.correct,
                "total": grade.total,
                "passed": percent >= passing,
                "results": grade.results,
            },
            message=f"You scored {percent:g}% ({grade.correct}/{grade.total}).",
        )

    def _scoped(self, node: Node, answers: dict[str, str]) -> dict[str, str]:
        return {f"{node.id}:{qid}": str(value) for qid, value in answers.items()}

    def _stored(self, node: Node, session: SessionState) -> dict[str, str]:
        prefix = f"{node.id}:"
        return {
            key[len(prefix):]: value
            for key, value in session.quiz_answers.items()
            if key.startswith(prefix)
        }
