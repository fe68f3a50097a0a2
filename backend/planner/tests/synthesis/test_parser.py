import json

import pytest

from planner.synthesis.artifacts import DependencyEntry, dump_candidates
from planner.synthesis.parser import (
    extract_json_object,
    normalize_dependency_entry,
    parse_synthesis_response,
)

PAYLOAD = {
    "extractedSystems": [
        {"name": "Combat", "systemSlug": "combat", "purpose": "Fights", "dependencies": ["health"]},
        {"name": "Health", "systemSlug": "health", "mvpCriticality": "core", "flavor": "red"},
    ],
    "extractedSystemDetails": [
        {"name": "Damage roll", "detailType": "mechanic", "spec": "d6 + str", "targetSystemSlug": "combat"},
    ],
}


@pytest.mark.parametrize(
    "content",
    [
        json.dumps(PAYLOAD),
        "```json\n" + json.dumps(PAYLOAD, indent=2) + "\n```",
        "```\n" + json.dumps(PAYLOAD) + "\n```",
    ],
)
def test_valid_json_matches_json_loads(content):
    parsed = parse_synthesis_response(content)

    assert parsed.parse_mode == "json"
    assert dump_candidates(parsed.extracted_systems) == PAYLOAD["extractedSystems"]
    assert dump_candidates(parsed.extracted_system_details) == PAYLOAD["extractedSystemDetails"]
    assert parsed.raw_content == content


def test_unknown_fields_land_in_extra():
    parsed = parse_synthesis_response(json.dumps(PAYLOAD))

    health = parsed.extracted_systems[1]
    assert health.system_slug == "health"
    assert health.mvp_criticality == "core"
    assert health.extra == {"flavor": "red"}


def test_embedded_object_with_braces_in_strings():
    content = (
        "Sure! Here is the extraction you asked for:\n"
        '{"extractedSystems": [{"name": "Parser", "purpose": "Use { and } safely \\" even quoted"}], '
        '"extractedSystemDetails": []}\n'
        "Let me know if you need more."
    )

    parsed = parse_synthesis_response(content)

    assert parsed.parse_mode == "embedded"
    assert parsed.extracted_systems[0].purpose == 'Use { and } safely " even quoted'
    assert parsed.extracted_system_details == []


@pytest.mark.parametrize(
    "system",
    [
        {"name": "Combat", "systemSlug": "combat", "version": 1},
        {"name": "Combat", "systemSlug": "combat", "purpose": ["hit", "block"]},
        {"name": "Combat", "systemSlug": "combat", "dependencies": "health"},
        {"name": "Combat", "systemSlug": "combat", "dependencies": [{"name": "health"}, "loot"]},
    ],
)
def test_mistyped_fields_keep_the_candidate(system):
    content = json.dumps({"extractedSystems": [system], "extractedSystemDetails": []})

    parsed = parse_synthesis_response(content)

    assert parsed.parse_mode == "json"
    assert dump_candidates(parsed.extracted_systems) == [system]
    assert parsed.extracted_systems[0].system_slug == "combat"


def test_mistyped_fields_read_as_defaults():
    content = json.dumps(
        {
            "extractedSystems": [
                {"systemSlug": "combat", "version": 1, "purpose": ["hit"], "dependencies": "health"},
                {"systemSlug": "loot", "dependencies": [{"name": "x"}, {"slug": "gold", "description": 7}, 4]},
            ],
            "extractedSystemDetails": [{"name": 5, "detailType": "mechanic", "spec": {"text": "d6"}}],
        }
    )

    parsed = parse_synthesis_response(content)

    combat, loot = parsed.extracted_systems
    assert (combat.version, combat.purpose, combat.dependencies) == (None, None, ["health"])
    assert loot.dependencies == [DependencyEntry(slug="gold")]
    detail = parsed.extracted_system_details[0]
    assert (detail.name, detail.detail_type, detail.spec) == (None, "mechanic", None)


def test_embedded_prefers_real_answer_over_echoed_example():
    example = {"extractedSystems": [{"name": "Example"}], "extractedSystemDetails": []}
    answer = {
        "extractedSystems": [{"name": "Combat"}, {"name": "Health"}],
        "extractedSystemDetails": [{"name": "Hit points"}],
    }
    content = f"Example: {json.dumps(example)}\nAnswer: {json.dumps(answer)}"

    parsed = parse_synthesis_response(content)

    assert [s.name for s in parsed.extracted_systems] == ["Combat", "Health"]
    assert parsed.extracted_system_details[0].name == "Hit points"


def test_regex_fallback_recovers_systems_array():
    content = (
        'Result: {"extractedSystems": [{"name": "Combat", "systemSlug": "combat"}], '
        '"extractedSystemDetails": [oops this is broken'
    )

    parsed = parse_synthesis_response(content)

    assert parsed.parse_mode == "regex"
    assert [s.system_slug for s in parsed.extracted_systems] == ["combat"]
    assert parsed.extracted_system_details == []


def test_unparseable_text_degrades_to_empty_lists():
    content = "I could not think of any systems today, sorry."

    parsed = parse_synthesis_response(content)

    assert parsed.parse_mode == "none"
    assert parsed.is_empty
    assert parsed.extracted_systems == []
    assert parsed.extracted_system_details == []
    assert parsed.raw_content == content


def test_empty_and_none_content_never_raise():
    assert parse_synthesis_response("").parse_mode == "none"
    assert parse_synthesis_response(None).raw_content == ""


def test_non_object_candidates_are_dropped():
    content = json.dumps(
        {"extractedSystems": ["combat", {"name": "Health"}, 3], "extractedSystemDetails": [None]}
    )

    parsed = parse_synthesis_response(content)

    assert [s.name for s in parsed.extracted_systems] == ["Health"]
    assert parsed.extracted_system_details == []


def test_suggested_lists_are_parsed():
    content = json.dumps(
        {
            "extractedSystems": [{"name": "Combat"}],
            "extractedSystemDetails": [],
            "suggestedSystems": [{"name": "Loot", "systemSlug": "loot"}],
            "suggestedSystemDetails": [{"name": "Drop table", "targetSystemSlug": "loot"}],
        }
    )

    parsed = parse_synthesis_response(content)

    assert parsed.suggested_systems[0].system_slug == "loot"
    assert parsed.suggested_system_details[0].target_system_slug == "loot"


def test_top_level_array_is_not_accepted_as_object():
    parsed = parse_synthesis_response('[{"name": "Combat"}]')

    assert parsed.parse_mode == "none"


def test_normalize_dependency_entry_shapes():
    assert normalize_dependency_entry("health") == DependencyEntry(slug="health")
    assert normalize_dependency_entry({"slug": "health", "description": "  hp  "}) == DependencyEntry(
        slug="health", description="hp"
    )
    assert normalize_dependency_entry(DependencyEntry(slug="loot", description=" ")).description is None


def test_extract_json_object_finds_first_object_in_prose():
    assert extract_json_object('Here you go: {"create": [0]} thanks') == {"create": [0]}
    assert extract_json_object("no json at all") is None
