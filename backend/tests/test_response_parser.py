from __future__ import annotations

import json
from datetime import date

import pytest

from app.services.response_parser import extract_json_object, parse_task_set
from app.services.task_set import EMPTY_TASK_SET, MALFORMED_RESPONSE, GeneratedTaskSet, GenerationFailure


def _payload(**overrides) -> dict:
    payload = {
        "subtasks": [
            {"title": "Plan", "description": "Write the plan", "estimatedHours": 3, "dependencies": []},
            {"title": "Build", "description": "Build it", "dependencies": [0]},
        ],
        "totalEstimatedHours": 5,
        "criticalPath": [0, 1],
    }
    payload.update(overrides)
    return payload


def test_sorry_text_is_malformed() -> None:
    outcome = parse_task_set("Sorry, I can't help with that.")

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE


@pytest.mark.parametrize("text", ["", "   ", None, 42])
def test_empty_or_non_text_is_malformed(text) -> None:
    outcome = parse_task_set(text)

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE


def test_missing_subtasks_is_malformed() -> None:
    outcome = parse_task_set(json.dumps({"tasks": []}))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE


def test_empty_subtask_list_is_empty_task_set() -> None:
    outcome = parse_task_set(json.dumps({"subtasks": []}))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == EMPTY_TASK_SET


def test_entry_without_title_is_malformed() -> None:
    outcome = parse_task_set(json.dumps({"subtasks": [{"description": "no title"}]}))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE
    assert "subtasks.0.title" in outcome.message


def test_non_object_entry_is_malformed() -> None:
    outcome = parse_task_set(json.dumps({"subtasks": ["just a string"]}))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE


def test_json_inside_prose_and_fences_is_extracted() -> None:
    text = "Here is your plan {not json}:\n```json\n" + json.dumps(_payload()) + "\n```\nGood luck!"

    outcome = parse_task_set(text)

    assert isinstance(outcome, GeneratedTaskSet)
    assert [task.title for task in outcome.subtasks] == ["Plan", "Build"]


def test_braces_inside_strings_do_not_break_extraction() -> None:
    payload = _payload()
    payload["subtasks"][0]["description"] = "Use {placeholders} and } stray braces"

    extracted = extract_json_object("prefix " + json.dumps(payload) + " suffix")

    assert extracted == payload


def test_defaults_are_filled() -> None:
    outcome = parse_task_set(json.dumps({"subtasks": [{"title": "A", "description": "B"}, {"title": "C", "description": "D"}]}))

    assert isinstance(outcome, GeneratedTaskSet)
    first, second = outcome.subtasks
    assert first.estimated_hours == 2
    assert first.priority == "Medium"
    assert first.phase == "Execution"
    assert first.complexity == "Medium"
    assert first.risk_level == "Low"
    assert first.tags == [] and first.skills == []
    assert (first.order, second.order) == (1, 2)
    assert outcome.total_estimated_hours == 4


def test_unknown_enums_fall_back_and_hours_clamp() -> None:
    text = json.dumps(
        {
            "subtasks": [
                {
                    "title": "A",
                    "description": "B",
                    "priority": "URGENT",
                    "phase": "qa",
                    "complexity": "high",
                    "riskLevel": "extreme",
                    "estimatedHours": 500,
                },
                {"title": "C", "description": "D", "estimatedHours": 0.1},
                {"title": "E", "description": "F", "estimatedHours": "lots"},
            ]
        }
    )

    outcome = parse_task_set(text)

    assert isinstance(outcome, GeneratedTaskSet)
    first, second, third = outcome.subtasks
    assert first.priority == "Medium"
    assert first.phase == "QA"
    assert first.complexity == "High"
    assert first.risk_level == "Low"
    assert first.estimated_hours == 100
    assert second.estimated_hours == 0.5
    assert third.estimated_hours == 2


def test_dependencies_are_kept_verbatim() -> None:
    text = json.dumps({"subtasks": [{"title": "A", "description": "B", "dependencies": [5, -1, 0, "x", 1.0]}]})

    outcome = parse_task_set(text)

    assert isinstance(outcome, GeneratedTaskSet)
    assert outcome.subtasks[0].dependencies == [5, -1, 0, "x", 1.0]


def test_supplied_dates_are_parsed() -> None:
    text = json.dumps(
        {"subtasks": [{"title": "A", "description": "B", "startDate": "2024-01-03T09:00:00Z", "dueDate": "soon"}]}
    )

    outcome = parse_task_set(text)

    assert isinstance(outcome, GeneratedTaskSet)
    assert outcome.subtasks[0].start_date == date(2024, 1, 3)
    assert outcome.subtasks[0].due_date is None


def test_generator_cannot_claim_provenance() -> None:
    outcome = parse_task_set(json.dumps(_payload(fallbackUsed=True, fromCache=True)))

    assert isinstance(outcome, GeneratedTaskSet)
    assert outcome.fallback_used is False
    assert outcome.from_cache is False


def test_unnamed_milestones_are_dropped() -> None:
    outcome = parse_task_set(
        json.dumps(_payload(milestones=[{"name": "Alpha", "taskIndices": [0]}, {"description": "nameless"}, "junk"]))
    )

    assert isinstance(outcome, GeneratedTaskSet)
    assert [milestone.name for milestone in outcome.milestones] == ["Alpha"]


def test_non_finite_order_is_defaulted() -> None:
    outcome = parse_task_set('{"subtasks":[{"title":"A","description":"a","order":1e999},{"title":"B","description":"b","order":NaN}]}')

    assert isinstance(outcome, GeneratedTaskSet)
    assert [task.order for task in outcome.subtasks] == [1, 2]


@pytest.mark.parametrize("raw", ["1e999", "-1e999", "Infinity", "NaN"])
def test_non_finite_hours_and_total_are_recomputed(raw) -> None:
    text = (
        '{"subtasks":[{"title":"A","description":"a","estimatedHours":%s},'
        '{"title":"B","description":"b","estimatedHours":4}],"totalEstimatedHours":%s}' % (raw, raw)
    )

    outcome = parse_task_set(text)

    assert isinstance(outcome, GeneratedTaskSet)
    assert outcome.subtasks[0].estimated_hours == 2.0
    assert outcome.total_estimated_hours == 6.0


def test_loose_milestone_metadata_is_defaulted() -> None:
    outcome = parse_task_set(
        json.dumps(
            _payload(
                milestones=[
                    {"name": "M1", "description": None, "estimatedCompletion": 7, "taskIndices": "0"},
                    {"name": "M2", "description": ["x"], "estimatedCompletion": {"week": 2}},
                ]
            )
        )
    )

    assert isinstance(outcome, GeneratedTaskSet)
    first, second = outcome.milestones
    assert (first.description, first.estimated_completion, first.task_indices) == ("", "7", [])
    assert (second.description, second.estimated_completion) == ("", None)
    assert len(outcome.subtasks) == 2


def test_invalid_top_level_field_names_generator_data() -> None:
    outcome = parse_task_set(json.dumps(_payload(subtasks=[{"title": "A", "description": "a"}, {"title": "B"}])))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.message.startswith("Invalid generator data at subtasks.1.description")


def test_unexpected_coercion_error_becomes_malformed(monkeypatch) -> None:
    def explode(cls, value):
        raise OverflowError("cannot convert float infinity to integer")

    monkeypatch.setattr(GeneratedTaskSet, "model_validate", classmethod(explode))

    outcome = parse_task_set(json.dumps(_payload()))

    assert isinstance(outcome, GenerationFailure)
    assert outcome.kind == MALFORMED_RESPONSE
    assert isinstance(outcome.error, OverflowError)
