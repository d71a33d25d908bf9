"""Tests for chunk extraction."""

import pytest

from kb_retriever.extractor import (
    ValueKind,
    category_label,
    display_properties,
    document_label,
    extract_chunks,
    kind_of,
    render_array,
    render_structured,
)


HANDBOOK = {
    "hr/handbook": {
        "overview": "This handbook describes how the people team works with everyone.",
        "onboarding": {
            "owner": "People Operations",
            "duration_days": 30,
            "remote": True,
            "steps": [
                {"step": "Sign contract", "details": "Review and sign the employment contract."},
                {"step": "Meet your buddy", "details": "A buddy helps you.", "tags": ["social", "team"]},
            ],
        },
        "values": ["Be curious about everything", "Own the outcome", "ok"],
    },
}


def test_kind_of():
    """Values are tagged by JSON kind; booleans are not numbers."""
    assert kind_of("x") is ValueKind.STRING
    assert kind_of(3) is ValueKind.NUMBER
    assert kind_of(2.5) is ValueKind.NUMBER
    assert kind_of(True) is ValueKind.BOOLEAN
    assert kind_of(None) is ValueKind.NULL
    assert kind_of([]) is ValueKind.ARRAY
    assert kind_of({}) is ValueKind.OBJECT
    with pytest.raises(TypeError):
        kind_of(object())


def test_labels():
    """Labels are folder-aware."""
    assert document_label("policies/leave") == "Policies - Leave"
    assert document_label("hr/policies/leave_types") == "Policies - Leave Types"
    assert document_label("faq") == "Faq"
    assert category_label("policies/leave") == "Policies"
    assert category_label("faq") == "Faq"


def test_single_string_document():
    """The example scenario yields exactly one chunk labelled by folder and file."""
    knowledge_base = {"policies/leave": {"vacation_policy": "Employees accrue 15 vacation days annually."}}

    chunks = extract_chunks(knowledge_base)

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.text == "Employees accrue 15 vacation days annually."
    assert chunk.path == "policies/leave.vacation_policy"
    assert chunk.context == "Policies - Leave"
    assert chunk.parent_context == "Policies"
    assert chunk.source_file == "policies/leave.json"
    assert not chunk.flags.is_structured
    assert not chunk.flags.is_aggregate


def test_string_length_thresholds():
    """Object strings need more than 15 characters, array strings more than 10."""
    knowledge_base = {
        "doc": {
            "short": "exactly fifteen",   # 15 characters
            "long": "sixteen chars!!!",   # 16 characters
            "items": ["ten chars!", "eleven char"],
        },
    }
    texts = [chunk.text for chunk in extract_chunks(knowledge_base)]

    assert "exactly fifteen" not in texts
    assert "sixteen chars!!!" in texts
    assert "ten chars!" not in texts
    assert "eleven char" in texts


def test_handbook_chunks_in_order():
    """Structured, aggregate and leaf chunks appear depth-first in key order."""
    chunks = extract_chunks(HANDBOOK)
    paths = [(chunk.path, chunk.flags.is_structured, chunk.flags.is_aggregate) for chunk in chunks]

    assert paths == [
        ("hr/handbook", True, False),
        ("hr/handbook.overview", False, False),
        ("hr/handbook.onboarding", True, False),
        ("hr/handbook.onboarding.owner", False, False),
        ("hr/handbook.onboarding.steps", False, True),
        ("hr/handbook.onboarding.steps[0].details", False, False),
        ("hr/handbook.onboarding.steps[1].details", False, False),
        ("hr/handbook.values", False, True),
        ("hr/handbook.values[0]", False, False),
        ("hr/handbook.values[1]", False, False),
    ]


def test_nested_contexts():
    """Containers get their own label; leaves keep the enclosing one."""
    by_path = {chunk.path: chunk for chunk in extract_chunks(HANDBOOK)}

    assert by_path["hr/handbook.overview"].context == "Hr - Handbook"
    assert by_path["hr/handbook.onboarding"].context == "Hr - Handbook - Onboarding"
    assert by_path["hr/handbook.onboarding"].parent_context == "Hr - Handbook"
    assert by_path["hr/handbook.onboarding.steps"].context == "Hr - Handbook - Steps"
    assert by_path["hr/handbook.onboarding.steps"].parent_context == "Hr - Handbook - Onboarding"
    assert by_path["hr/handbook.onboarding.steps[0].details"].context == "Hr - Handbook - Steps"


def test_aggregate_rendering_of_objects():
    """Object arrays list display properties and indent the rest."""
    text = render_array("Steps", HANDBOOK["hr/handbook"]["onboarding"]["steps"])

    assert text == (
        "Steps:\n"
        "1. Sign contract\n"
        "   Details: Review and sign the employment contract.\n"
        "2. Meet your buddy\n"
        "   Details: A buddy helps you.\n"
        "   Tags: social, team"
    )


def test_aggregate_rendering_of_strings():
    """String arrays become a numbered list."""
    assert render_array("Values", ["One", "Two"]) == "Values:\n1. One\n2. Two"


def test_short_aggregate_dropped():
    """An aggregate of 50 characters or fewer is not kept."""
    chunks = extract_chunks({"doc": {"tags": ["alpha", "beta"]}})
    assert all(not chunk.flags.is_aggregate for chunk in chunks)


def test_display_properties_fallback():
    """Without preferred keys the first two string-valued keys are used."""
    item = {"count": 3, "city": "Oslo", "country": "Norway", "region": "East"}
    assert display_properties(item) == ["city", "country"]
    assert display_properties({"title": "T", "name": "N", "note": "x"}) == ["title", "name"]


def test_structured_rendering():
    """Objects render with two-space indentation per level."""
    text = render_structured("Onboarding", {
        "owner": "People",
        "remote": True,
        "contacts": {"email": "people@example.com"},
        "steps": ["Sign", {"step": "Meet"}],
    })

    assert text == (
        "Onboarding\n"
        "  Owner: People\n"
        "  Remote: true\n"
        "  Contacts:\n"
        "    Email: people@example.com\n"
        "  Steps:\n"
        "    - Sign\n"
        "    -\n"
        "      Step: Meet"
    )


def test_structured_requires_nested_structure():
    """Flat objects never produce a structured chunk."""
    flat = {"doc": {"a": "first value that is long", "b": "second value that is long", "c": 3}}
    assert all(not chunk.flags.is_structured for chunk in extract_chunks(flat))


def test_short_structured_dropped():
    """A structured rendering of 100 characters or fewer is not kept."""
    small = {"doc": {"a": 1, "b": {"c": 2}}}
    assert extract_chunks(small) == []


def test_extraction_is_deterministic():
    """Extracting the same knowledge base twice gives identical chunks."""
    first = extract_chunks(HANDBOOK)
    second = extract_chunks(HANDBOOK)
    assert first == second
    assert [chunk.model_dump_json() for chunk in first] == [chunk.model_dump_json() for chunk in second]


def test_top_level_array_document():
    """A document whose root is an array is handled like any array."""
    chunks = extract_chunks({"faq": ["What is the leave policy for new staff?", "How do I request equipment?"]})
    assert chunks[0].flags.is_aggregate
    assert chunks[0].text.startswith("Faq:\n1. What is the leave policy")
    assert [chunk.path for chunk in chunks[1:]] == ["faq[0]", "faq[1]"]
