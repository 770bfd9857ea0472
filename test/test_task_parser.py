import json

from extraction.task_parser import (
    MAX_DURATION_MIN,
    MIN_DURATION_MIN,
    TaskParser,
    fallback_parse,
    keyword_tags,
    validate_parsed_task,
)
from llm.llm_client import LLMClient


def test_model_answer_is_used(fake_provider_factory, now):
    provider = fake_provider_factory(
        json.dumps(
            {
                "title": "Physics lab report",
                "category": "lab",
                "priority": "high",
                "difficulty": "hard",
                "estimated_duration": 120,
                "deadline": "2026-03-06T17:00:00Z",
                "subject": "Physics",
                "tags": ["lab", "physics"],
            }
        )
    )
    parsed, used_fallback = TaskParser(LLMClient(provider=provider)).parse("lab report friday", now=now)

    assert not used_fallback
    assert parsed.category == "lab"
    assert parsed.priority == "high"
    assert parsed.deadline.isoformat() == "2026-03-06T17:00:00+00:00"
    assert parsed.subject == "Physics"


def test_out_of_range_values_are_coerced():
    parsed = validate_parsed_task(
        {
            "title": "x" * 150,
            "category": "homework",
            "priority": "critical",
            "difficulty": "brutal",
            "estimated_duration": 2000,
            "deadline": "next tuesday",
            "tags": [f"t{i}" for i in range(15)],
        }
    )
    assert len(parsed.title) == 100
    assert (parsed.category, parsed.priority, parsed.difficulty) == ("other", "medium", "medium")
    assert parsed.estimated_duration == MAX_DURATION_MIN
    assert parsed.deadline is None
    assert len(parsed.tags) == 10


def test_tiny_or_missing_duration():
    assert validate_parsed_task({"title": "a", "estimated_duration": 5}).estimated_duration == MIN_DURATION_MIN
    assert validate_parsed_task({"title": "a"}).estimated_duration == 60


def test_garbage_output_uses_fallback(fake_provider_factory):
    parser = TaskParser(LLMClient(provider=fake_provider_factory("THIS IS NOT JSON AT ALL")))
    parsed, used_fallback = parser.parse("Finish the chemistry worksheet before lecture")
    assert used_fallback
    assert parsed.title == "Finish the chemistry worksheet before lecture"
    assert parsed.category == "other"


def test_provider_failure_uses_fallback(offline_provider):
    parsed, used_fallback = TaskParser(LLMClient(provider=offline_provider)).parse("Read chapter 4")
    assert used_fallback
    assert parsed.estimated_duration == 60


def test_fallback_truncates_title_and_extracts_tags():
    text = "Prepare presentation slides for marketing seminar " * 5
    parsed = fallback_parse(text)
    assert len(parsed.title) == 100
    assert parsed.tags == ["prepare", "presentation", "slides", "marketing", "seminar"]


def test_keyword_tags_skip_stopwords_and_duplicates():
    assert keyword_tags("Study with notes, study with flashcards", limit=5) == [
        "study",
        "notes",
        "flashcards",
    ]
