from kick_relay.chat.emotes.matcher import find_catalog_emotes
from kick_relay.chat.models import CatalogEmote, EmoteScope


def _emote(name: str) -> CatalogEmote:
    return CatalogEmote(id=name.lower(), name=name, url="https://cdn.7tv.app/x", scope=EmoteScope.GLOBAL)


def _positions(text: str, emote_names: list[str], claimed=None):
    emote_map = {name: _emote(name) for name in emote_names}
    matches = find_catalog_emotes(text, emote_map, claimed)
    return [(start, end, emote.name) for start, end, emote in matches]


def test_match_simple_word():
    text = "hello Kappa world"
    assert _positions(text, ["Kappa"]) == [(6, 11, "Kappa")]


def test_match_punct_wrapped():
    text = "(Kappa)!"
    assert _positions(text, ["Kappa"]) == [(1, 6, "Kappa")]


def test_match_brackets():
    text = "[Kappa]"
    assert _positions(text, ["Kappa"]) == [(1, 6, "Kappa")]


def test_match_name_with_punctuation():
    text = "D:"
    assert _positions(text, ["D:"]) == [(0, 2, "D:")]


def test_no_match_inside_word():
    assert _positions("xKappax KappaKappa", ["Kappa"]) == []


def test_case_sensitive():
    assert _positions("kappa", ["Kappa"]) == []


def test_skip_url():
    text = "https://example.com/Kappa"
    assert _positions(text, ["Kappa"]) == []


def test_no_overlap():
    text = "Kappa"
    assert _positions(text, ["Kappa"], claimed=[(0, 5)]) == []


def test_multiple_in_single_token():
    text = "Kappa,Kappa"
    assert _positions(text, ["Kappa"]) == [(0, 5, "Kappa"), (6, 11, "Kappa")]


def test_repeated_tokens():
    assert _positions("LUL LUL", ["LUL"]) == [(0, 3, "LUL"), (4, 7, "LUL")]
