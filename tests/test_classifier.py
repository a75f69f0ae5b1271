"""Tests for classifying raw model replies into activities."""

from __future__ import annotations

import pytest

from src.activities import (
    ActionActivity,
    ElicitationActivity,
    ErrorActivity,
    ResponseActivity,
    ThoughtActivity,
    ToolName,
)
from src.classifier import (
    KEYWORD_PREFIXES,
    ClassificationError,
    UnrecognizedActivityError,
    classify_response,
)


class TestKeywordPrefixes:
    @pytest.mark.parametrize(
        ("raw", "expected_type", "body"),
        [
            ("THINKING: I need coordinates first", ThoughtActivity, "I need coordinates first"),
            ("RESPONSE:  Sunny, 22°C ", ResponseActivity, "Sunny, 22°C"),
            ("ELICITATION: Which city?", ElicitationActivity, "Which city?"),
            ("ERROR: The tool failed", ErrorActivity, "The tool failed"),
        ],
    )
    def test_body_activities_strip_prefix_and_whitespace(self, raw, expected_type, body):
        activity = classify_response(raw)
        assert isinstance(activity, expected_type)
        assert activity.body == body

    def test_leading_whitespace_is_ignored(self):
        activity = classify_response("\n  RESPONSE: done")
        assert isinstance(activity, ResponseActivity)
        assert activity.body == "done"

    def test_multiline_body_is_kept(self):
        activity = classify_response("RESPONSE: Line one\nLine two\n")
        assert activity.body == "Line one\nLine two"

    def test_prefix_order_is_fixed(self):
        assert [prefix for prefix, _ in KEYWORD_PREFIXES] == [
            "THINKING:", "ACTION:", "RESPONSE:", "ELICITATION:", "ERROR:",
        ]

    def test_later_keyword_inside_body_does_not_change_kind(self):
        activity = classify_response("THINKING: I will then send RESPONSE: soon")
        assert isinstance(activity, ThoughtActivity)
        assert activity.body == "I will then send RESPONSE: soon"

    def test_lowercase_prefix_is_not_recognised(self):
        with pytest.raises(UnrecognizedActivityError):
            classify_response("response: sunny")


class TestActionParsing:
    def test_city_action(self):
        activity = classify_response('ACTION: coordinatesLookup("Paris")')
        assert isinstance(activity, ActionActivity)
        assert activity.action is ToolName.COORDINATES_LOOKUP
        assert activity.parameter == '"Paris"'
        assert activity.result is None

    def test_coordinate_action_keeps_parameter_verbatim(self):
        activity = classify_response("ACTION: weatherLookup(48.85, 2.35)")
        assert activity.action is ToolName.WEATHER_LOOKUP
        assert activity.parameter == "48.85, 2.35"

    def test_no_space_after_prefix(self):
        activity = classify_response("ACTION:timeLookup(40.7, -74.0)")
        assert activity.action is ToolName.TIME_LOOKUP

    def test_parameter_may_contain_parentheses(self):
        activity = classify_response('ACTION: coordinatesLookup("Paris (France)")')
        assert activity.parameter == '"Paris (France)"'

    def test_parameter_stops_at_end_of_first_line(self):
        activity = classify_response('ACTION: coordinatesLookup("Lyon")\nThen (maybe) the weather.')
        assert activity.parameter == '"Lyon"'

    def test_empty_arguments_yield_no_parameter(self):
        activity = classify_response("ACTION: weatherLookup()")
        assert activity.parameter is None

    def test_unknown_tool_is_a_classification_error(self):
        with pytest.raises(ClassificationError, match="Invalid tool name: flightLookup"):
            classify_response('ACTION: flightLookup("Paris")')

    def test_unknown_tool_is_not_an_unrecognized_activity(self):
        with pytest.raises(ClassificationError) as exc_info:
            classify_response('ACTION: flightLookup("Paris")')
        assert not isinstance(exc_info.value, UnrecognizedActivityError)

    def test_missing_parentheses_is_malformed(self):
        with pytest.raises(ClassificationError, match="Malformed action"):
            classify_response("ACTION: coordinatesLookup Paris")

    def test_space_before_parenthesis_is_malformed(self):
        with pytest.raises(ClassificationError, match="Malformed action"):
            classify_response('ACTION: coordinatesLookup ("Paris")')


class TestUnrecognizedReplies:
    def test_plain_text_raises_with_raw_text(self):
        with pytest.raises(UnrecognizedActivityError) as exc_info:
            classify_response("The weather is nice.")
        assert exc_info.value.raw == "The weather is nice."

    def test_empty_reply_raises(self):
        with pytest.raises(UnrecognizedActivityError):
            classify_response("")
