"""
Unit tests for content generator adapters.

The HTTP generator is exercised against httpx.MockTransport, so no network
access is needed.
"""
import httpx
import pytest

from learnpath.adaptive.errors import GenerationError, GenerationTimeoutError
from learnpath.adaptive.models import Level, QuestionKind
from learnpath.content.generator import (
    GeneratedContent,
    HttpContentGenerator,
    TemplateContentGenerator,
    build_generator,
)


@pytest.fixture
def generated_payload():
    return {
        "body": "# Sets\n\n## Membership\n\nElements belong to sets.",
        "questions": {
            "Membership": [
                {
                    "prompt": "Is 1 in {1, 2}?",
                    "options": [{"id": "y", "text": "yes"}, {"id": "n", "text": "no"}],
                    "correct_answers": ["y"],
                }
            ]
        },
    }


def http_generator(handler, fallback=None):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpContentGenerator("http://generator.test", timeout_seconds=5, fallback=fallback, client=client)


class TestHttpContentGenerator:
    def test_successful_generation(self, generated_payload):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(200, json=generated_payload)

        content = http_generator(handler).generate("Sets", Level.BEGINNER)

        assert seen["url"] == "http://generator.test/generate"
        assert b'"level":"beginner"' in seen["body"].replace(b" ", b"")
        assert content.body.startswith("# Sets")
        assert content.questions["Membership"][0].correct_answers == frozenset({"y"})
        assert not content.degraded

    def test_timeout_raises_even_with_fallback(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        generator = http_generator(handler, fallback=TemplateContentGenerator())
        with pytest.raises(GenerationTimeoutError):
            generator.generate("Sets", Level.BEGINNER)

    def test_server_error_degrades_to_fallback(self):
        generator = http_generator(lambda request: httpx.Response(503), fallback=TemplateContentGenerator())

        content = generator.generate("Sets", Level.BEGINNER)
        assert content.degraded
        assert "## Fundamentals of Sets" in content.body

    def test_malformed_payload_without_fallback(self):
        generator = http_generator(lambda request: httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(GenerationError):
            generator.generate("Sets", Level.BEGINNER)


class TestTemplateContentGenerator:
    def test_sections_scale_with_level(self):
        generator = TemplateContentGenerator()
        beginner = generator.generate("Sets", Level.BEGINNER)
        advanced = generator.generate("Sets", Level.ADVANCED)

        assert len(beginner.questions) == 3
        assert len(advanced.questions) == 5
        assert all(q.kind == QuestionKind.MULTI_SELECT for q in advanced.all_questions())


class TestGeneratedContent:
    def test_string_options_get_positional_ids(self):
        content = GeneratedContent.from_dict(
            {"body": "x", "questions": {"A": [{"question": "Q?", "options": ["p", "q"], "correct_answer": 1}]}}
        )
        question = content.questions["A"][0]
        assert question.prompt == "Q?"
        assert question.option_ids == {"0", "1"}
        assert question.correct_answers == frozenset({"1"})

    def test_questions_must_be_keyed_by_section(self):
        with pytest.raises(ValueError):
            GeneratedContent.from_dict({"body": "x", "questions": [1, 2]})


class TestBuildGenerator:
    def test_template_when_unconfigured(self, settings):
        assert isinstance(build_generator(settings), TemplateContentGenerator)

    def test_http_when_url_set(self, settings):
        settings.generator_url = "http://generator.test"
        generator = build_generator(settings)
        assert isinstance(generator, HttpContentGenerator)
        assert isinstance(generator.fallback, TemplateContentGenerator)
        generator.close()
