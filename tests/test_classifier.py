"""
Event Classifier Tests
======================
"""

from gnip_stream.models.events import EventKind, StreamEvent
from gnip_stream.stream.classifier import classify
from gnip_stream.stream.parser import loads


class TestPrecedence:
    """First matching field wins."""

    def test_error_beats_everything(self):
        value = {
            "error": {"message": "Rate limited"},
            "delete": {"status": {"id": "1"}},
            "body": "text",
            "text": "text",
            "info": {"message": "hi"},
        }
        event = classify(value)
        assert event.kind is EventKind.ERROR
        assert event.message == "Rate limited"

    def test_error_without_message_uses_placeholder(self):
        event = classify({"error": "boom"})
        assert event.kind is EventKind.ERROR
        assert event.message == "-"

    def test_delete_beats_body(self):
        event = classify({"delete": {"status": {"id": "1"}}, "body": "still here"})
        assert event.kind is EventKind.DELETE

    def test_body_and_text_are_tweets(self):
        assert classify({"body": "hello"}).kind is EventKind.TWEET
        assert classify({"text": "hello"}).kind is EventKind.TWEET

    def test_tweet_beats_info(self):
        assert classify({"text": "hello", "info": {"message": "x"}}).kind is EventKind.TWEET

    def test_info(self):
        assert classify({"info": {"message": "Replay Request Completed"}}).kind is EventKind.INFO

    def test_plain_object(self):
        event = classify({"id": 1})
        assert event.kind is EventKind.OBJECT
        assert event.message is None

    def test_falsy_fields_do_not_classify(self):
        assert classify({"error": None, "delete": {}, "body": ""}).kind is EventKind.OBJECT

    def test_non_object_values(self):
        assert classify([1, 2]).kind is EventKind.OBJECT
        assert classify("text").kind is EventKind.OBJECT
        assert classify(None).kind is EventKind.OBJECT


class TestValuePassthrough:
    """Classification keeps the parsed value untouched."""

    def test_value_is_same_object(self):
        value = {"body": "hello"}
        assert classify(value).value is value

    def test_big_numbers_survive_classification(self):
        raw = b'{"body": "x", "id": 1234567890123456789, "score": 3.14159265358979323846}'
        event = classify(loads(raw))
        assert event.kind is EventKind.TWEET
        assert str(event.value["id"]) == "1234567890123456789"
        assert str(event.value["score"]) == "3.14159265358979323846"

    def test_event_json_keeps_decimal_digits(self):
        event = StreamEvent(kind=EventKind.OBJECT, value=loads(b'{"x": 0.12345678901234567891}'))
        assert '"0.12345678901234567891"' in event.to_json()
