"""
Content generator adapters.

The lesson-writing service is an external collaborator: given a topic and a
level it returns lesson markdown plus per-section quiz data. This module holds
the boundary contract, an httpx client for the remote service, and a template
generator used offline or as a degraded fallback.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx
from loguru import logger

from config import Settings
from learnpath.adaptive.errors import GenerationError, GenerationTimeoutError
from learnpath.adaptive.models import Level, Question, QuestionKind


@dataclass
class GeneratedContent:
    """Lesson text plus quiz questions keyed by section title."""

    body: str
    questions: dict[str, list[Question]] = field(default_factory=dict)
    degraded: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GeneratedContent:
        raw_questions = data.get("questions") or {}
        if not isinstance(raw_questions, Mapping):
            raise ValueError("questions must be an object keyed by section title")
        return cls(
            body=str(data["body"]),
            questions={
                str(section): [Question.from_dict(q) for q in items]
                for section, items in raw_questions.items()
            },
        )

    def all_questions(self) -> list[Question]:
        return [q for items in self.questions.values() for q in items]


class ContentGenerator(Protocol):
    """Boundary contract for lesson generation."""

    def generate(self, topic: str, level: Level) -> GeneratedContent:
        ...


# =============================================================================
# Template generator
# =============================================================================


_SECTIONS_BY_LEVEL = {
    Level.BEGINNER: ["Fundamentals of {topic}", "Core Concepts", "First Hands-on Practice"],
    Level.INTERMEDIATE: [
        "Fundamentals of {topic}",
        "Core Concepts",
        "Common Patterns",
        "Applying {topic}",
    ],
    Level.ADVANCED: [
        "Advanced {topic} Concepts",
        "{topic} Implementation",
        "Performance and Trade-offs",
        "{topic} Best Practices",
        "Real-world Case Studies",
    ],
}


class TemplateContentGenerator:
    """Deterministic lessons built from templates; never fails."""

    def generate(self, topic: str, level: Level) -> GeneratedContent:
        titles = [t.format(topic=topic) for t in _SECTIONS_BY_LEVEL[level]]
        parts = [
            f"# Learning Path: {topic}",
            "",
            f"A {level.value} learning path for {topic}.",
        ]
        questions: dict[str, list[Question]] = {}
        for title in titles:
            parts.extend(
                [
                    "",
                    f"## {title}",
                    "",
                    f"This step covers {title} as part of learning {topic}.",
                ]
            )
            questions[title] = [self._question(title, level)]
        parts.extend(
            [
                "",
                "## Resources",
                "",
                f"- Introductory video course on {topic}",
                f"- {topic} reference book",
                f"- Official {topic} documentation",
            ]
        )
        return GeneratedContent(body="\n".join(parts), questions=questions)

    def _question(self, title: str, level: Level) -> Question:
        if level == Level.ADVANCED:
            return Question.from_dict(
                {
                    "prompt": f'Which statements about "{title}" hold in practice?',
                    "kind": QuestionKind.MULTI_SELECT.value,
                    "options": [
                        f"{title} involves trade-offs",
                        f"{title} depends on context",
                        f"{title} never needs revisiting",
                        f"{title} is purely theoretical",
                    ],
                    "correct_answers": ["0", "1"],
                    "explanation": f"{title} is contextual and involves trade-offs.",
                }
            )
        return Question.from_dict(
            {
                "prompt": f'What is the main concept covered in "{title}"?',
                "options": [
                    f"The core principles of {title}",
                    f"The history of {title}",
                    f"Applications of {title}",
                    f"Limitations of {title}",
                ],
                "correct_answers": ["0"],
                "explanation": f"This question tests the main concepts in {title}.",
            }
        )


# =============================================================================
# HTTP generator
# =============================================================================


class HttpContentGenerator:
    """
    Client for a remote lesson generation service.

    Wire format: ``POST {base_url}/generate`` with ``{"topic", "level"}``,
    answered by ``{"body": str, "questions": {section: [question, ...]}}``.
    Timeouts always raise GenerationTimeoutError; other failures degrade to
    ``fallback`` when one is given.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        fallback: ContentGenerator | None = None,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
        )

    def close(self) -> None:
        self.client.close()

    def generate(self, topic: str, level: Level) -> GeneratedContent:
        try:
            response = self.client.post(
                f"{self.base_url}/generate",
                json={"topic": topic, "level": level.value},
            )
            response.raise_for_status()
            return GeneratedContent.from_dict(response.json())
        except httpx.TimeoutException as e:
            logger.warning(f"Content generation timed out for '{topic}' ({level.value})")
            raise GenerationTimeoutError(topic, self.timeout_seconds) from e
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            if self.fallback is None:
                raise GenerationError(f"Content generation failed for '{topic}': {e}") from e
            logger.warning(f"Content generation failed for '{topic}', using template: {e}")
            content = self.fallback.generate(topic, level)
            content.degraded = True
            return content


def build_generator(settings: Settings) -> ContentGenerator:
    """Create the generator described by settings."""
    template = TemplateContentGenerator()
    if not settings.has_generator_configured():
        return template
    return HttpContentGenerator(
        base_url=settings.generator_url,
        api_key=settings.generator_api_key,
        timeout_seconds=settings.generation_timeout_seconds,
        fallback=template if settings.generator_fallback_to_template else None,
    )
