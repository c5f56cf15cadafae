"""Tests for payload redaction and log previews."""

import json

from src.utils.redaction import payload_preview, redact_payload


class TestRedactPayload:

    def test_redacts_sensitive_keys(self):
        data = {"api_token": "tok123", "job_name": "build-app", "password": "pw"}
        result = redact_payload(data)
        assert result["api_token"] == "***REDACTED***"
        assert result["password"] == "***REDACTED***"
        assert result["job_name"] == "build-app"

    def test_handles_nested_structures(self):
        data = {"data": {"secrets": {"aws": ["AKIA..."]}, "source": "build_log"}}
        result = redact_payload(data)
        assert result["data"]["secrets"] == "***REDACTED***"
        assert result["data"]["source"] == "build_log"

    def test_handles_list_of_dicts(self):
        data = {"changes": [{"private_key": "leaked", "author": "dev"}]}
        result = redact_payload(data)
        assert result["changes"][0]["private_key"] == "***REDACTED***"
        assert result["changes"][0]["author"] == "dev"

    def test_key_match_is_case_insensitive(self):
        result = redact_payload({"Authorization": "Bearer abc"})
        assert result["Authorization"] == "***REDACTED***"

    def test_truncates_long_strings(self):
        result = redact_payload({"raw_log": "x" * 500}, max_value_length=10)
        assert result["raw_log"] == "xxxxxxxxxx...(500 chars)"

    def test_does_not_mutate_input(self):
        data = {"token": "abc", "nested": {"secret": "s"}}
        redact_payload(data)
        assert data == {"token": "abc", "nested": {"secret": "s"}}

    def test_custom_sensitive_patterns(self):
        data = {"build_file": "<project/>", "token": "kept"}
        result = redact_payload(data, sensitive_patterns=frozenset({"build_file"}))
        assert result["build_file"] == "***REDACTED***"
        assert result["token"] == "kept"

    def test_scalars_pass_through(self):
        assert redact_payload(42) == 42
        assert redact_payload(None) is None


class TestPayloadPreview:

    def test_json_payload_is_redacted_and_compact(self):
        raw = json.dumps({"type": "secret_detection", "data": {"secrets": {"k": ["v"]}}})
        preview = payload_preview(raw)
        assert preview == '{"type":"secret_detection","data":{"secrets":"***REDACTED***"}}'

    def test_non_json_payload_is_truncated(self):
        assert payload_preview("not json " * 10, max_length=8) == "not json...(90 chars)"

    def test_short_non_json_kept(self):
        assert payload_preview("oops") == "oops"

    def test_double_encoded_payload_is_redacted(self):
        body = {"type": "secret_detection", "data": {"secrets": {"aws": ["AKIA1234"]}}}
        raw = json.dumps(json.dumps(json.dumps(body)))
        preview = payload_preview(raw)
        assert "AKIA1234" not in preview
        assert preview == '{"type":"secret_detection","data":{"secrets":"***REDACTED***"}}'

    def test_json_string_that_is_not_json_inside(self):
        assert payload_preview(json.dumps("plain text")) == '"plain text"'
