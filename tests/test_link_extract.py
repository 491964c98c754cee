from conftest import BUTTON_HTML
from link_extract import build_rules, extract_link

UPDATE_URL = "https://www.netflix.com/account/update-primary-location?nftoken=abc&g=1"


def test_button_href_is_unescaped():
    assert extract_link(BUTTON_HTML) == UPDATE_URL


def test_button_wins_over_earlier_bare_url():
    body = (
        "<p>Manage: https://www.netflix.com/account/update-primary-location?nftoken=OTHER</p>"
        '<a href="https://www.netflix.com/account/set-primary-location?x=1">'
        "<span>Yes, this was me</span></a>"
    )
    assert extract_link(body) == "https://www.netflix.com/account/set-primary-location?x=1"


def test_case_insensitive_phrase():
    body = '<a href="https://www.netflix.com/ok">YES, THIS   WAS ME</a>'
    assert extract_link(body) == "https://www.netflix.com/ok"


def test_vietnamese_phrase_any_case_and_nbsp():
    body = "<a class=\"btn\" href='https://www.netflix.com/vn'>ĐÚNG,&nbsp;ĐÂY LÀ TÔI</a>"
    assert extract_link(body) == "https://www.netflix.com/vn"


def test_anchor_does_not_borrow_an_earlier_href():
    body = (
        '<a href="https://www.netflix.com/help">Help</a> text '
        '<a href="https://www.netflix.com/confirm">Yes, this was me</a>'
    )
    assert extract_link(body) == "https://www.netflix.com/confirm"


def test_bare_update_url_in_plain_text():
    body = f"Yes, this was me\n[{UPDATE_URL}]\nThanks"
    assert extract_link(body) == UPDATE_URL


def test_bare_url_stops_at_quotes_and_brackets():
    body = f'<td data-x="{UPDATE_URL}">'
    assert extract_link(body) == UPDATE_URL


def test_bare_url_must_be_https():
    assert extract_link("http://www.netflix.com/account/update-primary-location?x=1") is None


def test_travel_verify_path():
    url = "https://www.netflix.com/account/travel/verify?nftoken=t"
    assert extract_link(f"Get code: {url} now") == url


def test_account_link_is_last_resort():
    body = "https://www.netflix.com/account/other?x https://www.netflix.com/account/travel/verify?y"
    assert extract_link(body) == "https://www.netflix.com/account/travel/verify?y"
    assert extract_link("see https://www.netflix.com/account/other?x") == "https://www.netflix.com/account/other?x"


def test_no_match():
    assert extract_link("<a href='https://example.com'>Yes, this was not me</a>") is None
    assert extract_link("") is None


def test_custom_phrases():
    rules = build_rules(["Confirm household"])
    body = '<a href="https://www.netflix.com/c">Confirm household</a>'
    assert extract_link(body, rules) == "https://www.netflix.com/c"
    assert extract_link(BUTTON_HTML, rules) == UPDATE_URL  # via bare URL rule


def test_empty_phrase_list_skips_button_rule():
    rules = build_rules([])
    assert extract_link('<a href="https://example.com/x">anything</a>', rules) is None


def test_many_unclosed_anchors_before_the_button():
    body = '<a href="https://www.netflix.com/x">' * 20000 + BUTTON_HTML
    assert extract_link(body) == UPDATE_URL


def test_anchor_text_spanning_another_anchor_is_not_merged():
    body = (
        '<a href="https://www.netflix.com/broken">Help '
        '<a href="https://www.netflix.com/confirm">Yes, this was me</a>'
    )
    assert extract_link(body) == "https://www.netflix.com/confirm"
