from app.services.calls.analysis import (
    extract_discovery_data,
    extract_discovery_from_transcript,
    extract_preferred_day,
)
from app.services.notifications.webhook_notifier import format_discovery


def test_preferred_day_lookup_order():
    assert extract_preferred_day({"variables": {"preferredDay": "Monday"}}) == "Monday"
    assert extract_preferred_day({"custom_data": {"preferredDay": "Tuesday"}}) == "Tuesday"
    assert (
        extract_preferred_day({"analysis": {"custom_data": {"scheduling": {"day": "Friday"}}}})
        == "Friday"
    )
    assert extract_preferred_day({}) == ""


def test_analysis_custom_data_may_be_json_string():
    call = {"analysis": {"custom_data": '{"preferredDay": "Wednesday"}'}}

    assert extract_preferred_day(call) == "Wednesday"


def test_unparseable_custom_data_is_ignored():
    call = {"call_id": "c1", "analysis": {"custom_data": "{not json"}}

    assert extract_preferred_day(call) == ""
    assert extract_discovery_data(call) == {}


def test_transcript_pairs_questions_with_answers():
    transcript = [
        {"role": "assistant", "content": "How did you hear about us?"},
        {"role": "user", "content": "A podcast"},
        {"role": "assistant", "content": "Are you running ads right now?"},
        {"role": "user", "content": "Yes, on Meta"},
        {"role": "assistant", "content": "Thanks!"},
    ]

    answers = extract_discovery_from_transcript(transcript)

    assert answers == {"question_0": "A podcast", "question_3": "Yes, on Meta"}


def test_transcript_used_only_when_answers_are_sparse():
    call = {
        "analysis": {
            "custom_data": {
                "discovery_data": {
                    "question_0": "Referral",
                    "question_1": "Retail",
                    "question_2": "Shoes",
                    "question_3": "No",
                }
            }
        },
        "transcript": [
            {"role": "assistant", "content": "Do you use a CRM?"},
            {"role": "user", "content": "HubSpot"},
        ],
    }

    assert "question_4" not in extract_discovery_data(call)

    call["analysis"]["custom_data"]["discovery_data"].pop("question_3")
    assert extract_discovery_data(call)["question_4"] == "HubSpot"


def test_format_discovery_labels_and_notes():
    formatted, notes = format_discovery({"question_0": "A podcast", "extra": "x"})

    assert formatted == {"How did you hear about us": "A podcast", "extra": "x"}
    assert notes == "How did you hear about us: A podcast\n\nextra: x"
