"""
Path Builder.

Turns generated lesson markdown into an ordered sequence of steps with
checkpoints inserted at a fixed interval:
- one step per second-level heading
- preamble text becomes an "Overview" step at order 0
- "## Resources" list items are distributed over the steps
- a checkpoint after every k steps, provided a step follows it
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from learnpath.adaptive.models import (
    Checkpoint,
    Level,
    Prerequisite,
    Question,
    Resource,
    ResourceType,
    Step,
    new_id,
)
from learnpath.content.parser import ContentParser, ParsedContent

if TYPE_CHECKING:
    from learnpath.content.generator import GeneratedContent

OVERVIEW_LABEL = "Overview"
RESOURCES_SECTION = "resources"


def determine_resource_type(text: str) -> ResourceType:
    """Guess a resource's type from its description."""
    lower = text.lower()
    if any(word in lower for word in ("video", "youtube", "course")):
        return ResourceType.VIDEO
    if "book" in lower:
        return ResourceType.BOOK
    if any(word in lower for word in ("tool", "software", "platform")):
        return ResourceType.TOOL
    return ResourceType.ARTICLE


def placeholder_questions(steps: Iterable[Step]) -> list[Question]:
    """One single-choice question per step when no quiz data was supplied."""
    return [
        Question.from_dict(
            {
                "prompt": f'What is the main concept covered in "{step.label}"?',
                "options": [
                    f"The core principles of {step.label}",
                    f"The history of {step.label}",
                    f"Applications of {step.label}",
                    f"Limitations of {step.label}",
                ],
                "correct_answers": ["0"],
                "explanation": f"This question tests your understanding of {step.label}.",
                "area": step.label,
            }
        )
        for step in steps
    ]


@dataclass
class BuiltSequence:
    """Output of the builder: a contiguous step sequence with its checkpoints."""

    title: str
    description: str
    steps: list[Step] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


class PathBuilder:
    """Assemble steps and checkpoints from generated content."""

    def __init__(self, checkpoint_interval: int = 3, passing_score: float = 70.0):
        if checkpoint_interval < 1:
            raise ValueError("checkpoint_interval must be >= 1")
        self.checkpoint_interval = checkpoint_interval
        self.passing_score = passing_score
        self._parser = ContentParser()

    def build(
        self,
        topic: str,
        level: Level,
        content: GeneratedContent | None,
        prerequisites: Iterable[tuple[Prerequisite, GeneratedContent | None]] = (),
    ) -> BuiltSequence:
        """
        Build the full sequence for a path.

        Prerequisite topics come first, in the order given, with their step
        labels prefixed by the topic name. Every step of the target topic lists
        all prerequisite topics in ``prerequisite_topic_ids``.
        """
        steps: list[Step] = []
        step_questions: dict[str, list[Question]] = {}
        prerequisite_ids: set[str] = set()

        for prerequisite, prereq_content in prerequisites:
            parsed, questions = self._parse(prereq_content, prerequisite.topic_id)
            steps.extend(
                self._steps_for(
                    parsed,
                    prerequisite.topic_id,
                    questions,
                    step_questions,
                    prerequisite_topic_ids=set(prerequisite.depends_on),
                    label_prefix=f"{prerequisite.topic_id}: ",
                )
            )
            prerequisite_ids.add(prerequisite.topic_id)

        parsed, questions = self._parse(content, topic)
        steps.extend(
            self._steps_for(
                parsed,
                topic,
                questions,
                step_questions,
                prerequisite_topic_ids=prerequisite_ids,
            )
        )

        for order, step in enumerate(steps):
            step.order = order

        description = parsed.preamble.split("\n\n")[0].strip() or (
            f"A comprehensive learning path for {topic}."
        )
        tags = [topic, level.value]
        tags.extend(
            s.title.lower() for s in parsed.sections if s.title.lower() != RESOURCES_SECTION
        )

        checkpoints = self._checkpoints(steps, step_questions, level)
        logger.debug(
            f"Built sequence for '{topic}': {len(steps)} steps, {len(checkpoints)} checkpoints"
        )
        return BuiltSequence(
            title=parsed.title or f"Learning Path: {topic}",
            description=description,
            steps=steps,
            checkpoints=checkpoints,
            tags=tags,
        )

    # ------------------------------------------------------------------

    def _parse(
        self, content: GeneratedContent | None, topic: str
    ) -> tuple[ParsedContent, dict[str, list[Question]]]:
        if content is None:
            return self._parser.parse("", default_title=f"Learning Path: {topic}"), {}
        questions = {title.strip().lower(): items for title, items in content.questions.items()}
        return self._parser.parse(content.body, default_title=f"Learning Path: {topic}"), questions

    def _steps_for(
        self,
        parsed: ParsedContent,
        topic: str,
        questions: dict[str, list[Question]],
        step_questions: dict[str, list[Question]],
        prerequisite_topic_ids: set[str],
        label_prefix: str = "",
    ) -> list[Step]:
        lesson_sections = [s for s in parsed.sections if s.title.lower() != RESOURCES_SECTION]
        resources_section = parsed.section(RESOURCES_SECTION)

        steps: list[Step] = []

        def add(label: str, body: str, section_key: str) -> None:
            step = Step(
                id=new_id(),
                label=f"{label_prefix}{label}",
                body=body,
                order=len(steps),
                topic=topic,
                prerequisite_topic_ids=set(prerequisite_topic_ids),
            )
            steps.append(step)
            if questions.get(section_key):
                step_questions[step.id] = [replace(q, area=q.area or step.label) for q in questions[section_key]]

        if not lesson_sections:
            body = parsed.raw_text.strip() or f"An introduction to {topic}."
            add(OVERVIEW_LABEL, body, OVERVIEW_LABEL.lower())
        else:
            if parsed.preamble:
                add(OVERVIEW_LABEL, parsed.preamble, OVERVIEW_LABEL.lower())
            for section in lesson_sections:
                add(section.title, section.content, section.title.lower())

        if resources_section is not None:
            for index, item in enumerate(resources_section.list_items):
                steps[index % len(steps)].resources.append(
                    Resource(title=item, type=determine_resource_type(item))
                )

        return steps

    def _checkpoints(
        self,
        steps: list[Step],
        step_questions: dict[str, list[Question]],
        level: Level,
    ) -> list[Checkpoint]:
        checkpoints = []
        k = self.checkpoint_interval
        for end in range(k, len(steps), k):
            covered = steps[end - k : end]
            questions = [q for step in covered for q in step_questions.get(step.id, [])]
            if not questions:
                questions = placeholder_questions(covered)
            checkpoints.append(
                Checkpoint(
                    id=new_id(),
                    after_step_order=end - 1,
                    questions=questions,
                    passing_score=self.passing_score,
                    difficulty=level,
                )
            )
        return checkpoints
