"""
Checkpoint Evaluator.

Scores a submission against a checkpoint's question set and appends an
immutable Attempt. Only malformed input is an error; a wrong answer is just a
lower score.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime

from loguru import logger

from learnpath.adaptive.errors import CheckpointNotFoundError, InvalidAnswerError
from learnpath.adaptive.models import Attempt, Checkpoint, LearningPath, utcnow

AnswerValue = str | Iterable[str]


class CheckpointEvaluator:
    """Score checkpoint submissions."""

    @staticmethod
    def normalize_answers(
        checkpoint: Checkpoint, answers: Mapping[str, AnswerValue]
    ) -> dict[str, tuple[str, ...]]:
        """
        Validate answers and return them as sorted option-id tuples.

        Raises:
            InvalidAnswerError: empty submission, unknown question or option id,
                or a checkpoint without questions
        """
        if not checkpoint.questions:
            raise InvalidAnswerError(f"Checkpoint {checkpoint.id} has no questions")
        if not answers:
            raise InvalidAnswerError("No answers submitted")

        normalized: dict[str, tuple[str, ...]] = {}
        for question_id, value in answers.items():
            question = checkpoint.question(question_id)
            if question is None:
                raise InvalidAnswerError(f"Unknown question id: {question_id}")

            selected = {value} if isinstance(value, str) else {str(v) for v in value}
            unknown = selected - question.option_ids
            if unknown:
                raise InvalidAnswerError(
                    f"Unknown option id(s) for question {question_id}: {', '.join(sorted(unknown))}"
                )
            normalized[question_id] = tuple(sorted(selected))
        return normalized

    def evaluate(
        self,
        checkpoint: Checkpoint,
        answers: Mapping[str, AnswerValue],
        now: datetime | None = None,
    ) -> Attempt:
        """Score answers without recording anything."""
        normalized = self.normalize_answers(checkpoint, answers)

        incorrect = []
        for question in checkpoint.questions:
            selected = normalized.get(question.id)
            if selected is None or not question.is_correct(set(selected)):
                incorrect.append(question.id)

        total = len(checkpoint.questions)
        score = round(100 * (total - len(incorrect)) / total, 2)
        return Attempt(
            checkpoint_id=checkpoint.id,
            answers=normalized,
            score=score,
            passed=score >= checkpoint.passing_score,
            taken_at=now or utcnow(),
            incorrect_question_ids=tuple(incorrect),
        )

    def record(
        self,
        path: LearningPath,
        checkpoint_id: str,
        answers: Mapping[str, AnswerValue],
        now: datetime | None = None,
    ) -> Attempt:
        """Score answers and append the attempt to the checkpoint in place."""
        found = path.find_checkpoint(checkpoint_id)
        if found is None:
            raise CheckpointNotFoundError(f"Checkpoint not found: {checkpoint_id}")
        checkpoint, _ = found

        attempt = self.evaluate(checkpoint, answers, now)
        checkpoint.attempts.append(attempt)
        logger.debug(
            f"Path {path.id}: checkpoint {checkpoint.id} scored {attempt.score:g} "
            f"({'passed' if attempt.passed else 'failed'}, needs {checkpoint.passing_score:g})"
        )
        return attempt
