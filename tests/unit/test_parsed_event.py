import pytest
from src.services.chat.parsed_event import StreamEvent, Usage


class TestStreamEvent:
    def test_delta_content_extraction(self):
        event = StreamEvent.from_payload({"choices": [{"delta": {"content": "Hello"}}]})
        assert event.has_content
        assert event.delta_content == "Hello"
        assert event.full_content is None

    def test_full_content_extraction(self):
        event = StreamEvent.from_payload({"choices": [{"message": {"role": "assistant", "content": "World"}}]})
        assert event.has_content
        assert event.full_content == "World"
        assert event.delta_content is None

    def test_empty_full_content_still_counts(self):
        event = StreamEvent.from_payload({"choices": [{"message": {"content": ""}}]})
        assert event.has_content
        assert event.full_content == ""

    def test_no_content(self):
        event = StreamEvent.from_payload({"choices": [{"delta": {}}]})
        assert not event.has_content
        assert event.usage is None

    def test_role_only_delta(self):
        event = StreamEvent.from_payload({"choices": [{"delta": {"role": "assistant"}}]})
        assert not event.has_content

    def test_usage_extraction(self):
        event = StreamEvent.from_payload({"choices": [], "usage": {"prompt_tokens": 10, "completion_tokens": 20}})
        assert event.usage == Usage(prompt_tokens=10, completion_tokens=20)

    def test_error_event(self):
        event = StreamEvent.from_payload({"error": {"message": "boom", "code": "upstream_network_error"}})
        assert event.error == "boom"
        assert not event.has_content

    def test_error_event_without_message(self):
        event = StreamEvent.from_payload({"error": {"code": "rate_limit_exceeded"}})
        assert event.error == "rate_limit_exceeded"

    def test_done(self):
        assert StreamEvent.done().is_done
        assert not StreamEvent.from_payload({"choices": []}).is_done

    def test_malformed_choices_are_tolerated(self):
        assert StreamEvent.from_payload({"choices": "nope"}).delta_content is None
        assert StreamEvent.from_payload({"choices": [None]}).delta_content is None
        assert StreamEvent.from_payload({"choices": [{"delta": {"content": 5}}]}).delta_content is None


class TestUsage:
    def test_partial_usage(self):
        usage = Usage.from_dict({"completion_tokens": 7})
        assert usage.completion_tokens == 7
        assert usage.prompt_tokens is None
        assert usage.total_tokens is None

    def test_invalid_values_are_dropped(self):
        assert Usage.from_dict({"prompt_tokens": "12", "completion_tokens": True, "total_tokens": -1}) is None
        assert Usage.from_dict(None) is None
        assert Usage.from_dict({}) is None

    def test_merge_keeps_earlier_categories(self):
        merged = Usage(prompt_tokens=10).merge(Usage(completion_tokens=20))
        assert merged == Usage(prompt_tokens=10, completion_tokens=20)

    def test_merge_newer_wins(self):
        merged = Usage(prompt_tokens=10, completion_tokens=5).merge(Usage(completion_tokens=20, total_tokens=30))
        assert merged == Usage(prompt_tokens=10, completion_tokens=20, total_tokens=30)
