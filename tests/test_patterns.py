"""Tests for identifier extraction from page content."""

from kick_relay.chat.discovery.patterns import (
    CHATROOM_EXTRACTORS,
    extract_channel_id,
    extract_chatroom_id,
    first_match,
)


def test_structured_chatroom_field():
    html = '<script>{"slug":"foo","chatroom": {"chatable_type":"x","id": 123456}}</script>'
    assert extract_chatroom_id(html) == "123456"


def test_chatroom_id_field():
    assert extract_chatroom_id('{"chatroom_id": 777}') == "777"


def test_topic_names():
    assert extract_chatroom_id("subscribe('chatrooms.4242.v2')") == "4242"
    assert extract_chatroom_id("chatroom_99") == "99"


def test_initial_state():
    html = '<script>window.__INITIAL_STATE__ = {"channel": {"chatroom": {"id": 31337}}};</script>'
    assert extract_chatroom_id(html) == "31337"


def test_data_attribute():
    assert extract_chatroom_id('<div data-chatroom-id="5150"></div>') == "5150"


def test_camel_case_assignment():
    assert extract_chatroom_id("const chatroomId = 8080;") == "8080"


def test_structured_beats_heuristic():
    html = '{"id": 99999999} {"chatroom_id": 12}'
    assert extract_chatroom_id(html) == "12"


def test_broad_heuristic_needs_large_value():
    assert extract_chatroom_id('{"id": 12345678}') == "12345678"
    assert extract_chatroom_id('{"id": 1234567}') is None
    assert extract_chatroom_id('{"id": 00000001}') is None


def test_nothing_found():
    assert extract_chatroom_id("<html><body>hello</body></html>") is None
    assert extract_chatroom_id("") is None
    assert extract_chatroom_id(None) is None


def test_channel_id_patterns():
    assert extract_channel_id('{"channel_id": 456}') == "456"
    assert extract_channel_id("predictions-channel-789") == "789"
    assert extract_channel_id("channel.321") == "321"
    assert extract_channel_id("channel_654") == "654"
    assert extract_channel_id("nothing here") is None


def test_first_match_respects_order():
    calls = []

    def first(content):
        calls.append("first")
        return None

    def second(content):
        calls.append("second")
        return "2"

    def third(content):
        calls.append("third")
        return "3"

    assert first_match([first, second, third], "x") == "2"
    assert calls == ["first", "second"]


def test_extractor_list_ends_with_heuristic():
    assert CHATROOM_EXTRACTORS[-1].__name__ == "_broad_numeric_id"
