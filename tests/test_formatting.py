"""
Tests for Discord payload formatting - discord_notify/domain/services/formatting.py
"""
import pytest

from discord_notify.domain.services.formatting import (
    build_fields,
    build_mention,
    build_todo_checklist,
    get_todo_status_marker,
    is_input_context_text,
    normalize_thread_title,
    parse_send_params,
    safe_string,
    to_iso_timestamp,
    truncate_text,
)


class TestSafeString:

    @pytest.mark.unit
    def test_values(self):
        assert safe_string(None) == ""
        assert safe_string("x") == "x"
        assert safe_string({"a": 1}) == '{"a": 1}'
        assert safe_string(["b"]) == '["b"]'

    @pytest.mark.unit
    def test_unserializable_falls_back_to_str(self):
        value = object()
        assert safe_string(value) == str(value)


class TestToIsoTimestamp:

    @pytest.mark.unit
    def test_epoch(self):
        assert to_iso_timestamp(0) == "1970-01-01T00:00:00.000Z"

    @pytest.mark.unit
    def test_milliseconds_kept(self):
        assert to_iso_timestamp(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["1", None, float("nan"), float("inf"), True])
    def test_rejects_non_numbers(self, value):
        assert to_iso_timestamp(value) is None


class TestTruncateAndFields:

    @pytest.mark.unit
    def test_truncate_text(self):
        assert truncate_text("abc", 3) == "abc"
        assert truncate_text("abcdef", 5) == "ab..."
        assert truncate_text("abcdef", 2) == "ab"

    @pytest.mark.unit
    def test_build_fields_skips_empty_and_caps_length(self):
        fields = build_fields([
            ("empty", ""),
            ("undef", None),
            ("long", "a" * 2000),
            ("ok", "v"),
        ])

        assert [f["name"] for f in fields] == ["long", "ok"]
        assert len(fields[0]["value"]) == 1024
        assert fields[0]["value"].endswith("...")
        assert fields[1] == {"name": "ok", "value": "v", "inline": False}

    @pytest.mark.unit
    def test_build_fields_all_empty_returns_none(self):
        assert build_fields([("a", None), ("b", "")]) is None


class TestTodoChecklist:

    @pytest.mark.unit
    def test_markers(self):
        assert get_todo_status_marker("completed") == "[✓]"
        assert get_todo_status_marker("in_progress") == "[▶]"
        assert get_todo_status_marker("pending") == "[ ]"
        assert get_todo_status_marker(None) == "[ ]"
        assert get_todo_status_marker("unknown") == "[ ]"

    @pytest.mark.unit
    def test_empty(self):
        assert build_todo_checklist([]) == "> (no todos)"
        assert build_todo_checklist(None) == "> (no todos)"

    @pytest.mark.unit
    def test_lines(self):
        result = build_todo_checklist([
            {"status": "completed", "content": "Task 1"},
            {"status": "in_progress", "content": "Task  \n 2"},
        ])
        assert result == "> [✓] Task 1\n> [▶] Task 2"

    @pytest.mark.unit
    def test_skips_cancelled_and_truncates_content(self):
        result = build_todo_checklist([
            {"status": "cancelled", "content": "should-not-appear"},
            {"status": "completed", "content": "a" * 250},
        ])

        assert "should-not-appear" not in result
        first_line = result.splitlines()[0]
        assert first_line.startswith("> [✓] ")
        assert first_line.endswith("...")
        assert len(first_line) == len("> [✓] ") + 200
        # A skipped item adds the trailer
        assert result.endswith("> ...and more")

    @pytest.mark.unit
    def test_truncates_to_description_limit(self):
        many = [{"status": "in_progress", "content": "a" * 200} for _ in range(40)]

        result = build_todo_checklist(many)

        assert len(result) <= 4096
        assert result.endswith("> ...and more")


class TestMentions:

    @pytest.mark.unit
    @pytest.mark.parametrize("mention", ["@everyone", "@here"])
    def test_ping_mentions(self, mention):
        assert build_mention(mention, "X") == {
            "content": mention,
            "allowed_mentions": {"parse": ["everyone"]},
        }

    @pytest.mark.unit
    def test_other_mentions_do_not_ping(self):
        assert build_mention("<@123>", "X") == {
            "content": "<@123>",
            "allowed_mentions": {"parse": []},
        }

    @pytest.mark.unit
    def test_empty(self):
        assert build_mention(None, "X") is None
        assert build_mention("", "X") is None


class TestSendParams:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [None, "", ",,,"])
    def test_empty(self, raw):
        assert parse_send_params(raw) == frozenset()

    @pytest.mark.unit
    def test_specific_keys(self):
        assert parse_send_params("sessionID, messageID") == {"sessionID", "messageID"}

    @pytest.mark.unit
    def test_invalid_keys_ignored(self):
        assert parse_send_params("sessionID,invalidKey,messageID") == {"sessionID", "messageID"}


class TestText:

    @pytest.mark.unit
    def test_normalize_thread_title(self):
        assert normalize_thread_title("  hello \n\t world ") == "hello world"
        assert normalize_thread_title(None) == ""

    @pytest.mark.unit
    def test_is_input_context_text(self):
        assert is_input_context_text("<file>content</file>")
        assert is_input_context_text("  \n<file>x")
        assert not is_input_context_text("see <file>")
