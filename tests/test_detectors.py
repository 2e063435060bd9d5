"""Tests for the word filter and link detectors."""

from kknbot.moderation.detectors import (
    extract_domain,
    extract_links,
    find_blacklisted_words,
    find_disallowed_links,
    is_whitelisted,
)


class TestBlacklist:
    def test_case_insensitive_substring_match(self):
        assert find_blacklisted_words("Ayo main JUDI online", {"judi"}) == ["judi"]

    def test_multiple_matches_are_sorted(self):
        assert find_blacklisted_words("slot dan judi", {"judi", "slot", "togel"}) == ["judi", "slot"]

    def test_no_match(self):
        assert find_blacklisted_words("rapat jam 9", {"judi"}) == []


class TestLinks:
    def test_extracts_scheme_www_and_bare_domains(self):
        links = extract_links("lihat https://example.com/a dan www.kkn.id serta docs.google.com")
        assert links == ["https://example.com/a", "www.kkn.id", "docs.google.com"]

    def test_plain_text_has_no_links(self):
        assert extract_links("besok rapat jam 9 pagi") == []

    def test_whitelist_is_substring_and_case_insensitive(self):
        assert is_whitelisted("HTTPS://DOCS.GOOGLE.COM/form", ["docs.google.com"])
        assert not is_whitelisted("https://evil.com", ["docs.google.com"])

    def test_only_whitelisted_links_are_allowed(self):
        text = "form di https://docs.google.com/x dan drive.google.com"
        assert find_disallowed_links(text, {"google.com"}) == []

    def test_one_foreign_link_among_whitelisted_is_reported(self):
        text = "https://docs.google.com/x dan https://spam.example/promo"
        assert find_disallowed_links(text, {"docs.google.com"}) == ["https://spam.example/promo"]

    def test_empty_whitelist_reports_everything(self):
        assert find_disallowed_links("go to bit.ly", set()) == ["bit.ly"]


def test_extract_domain():
    assert extract_domain("https://www.Example.com/path?q=1") == "example.com"
    assert extract_domain("docs.google.com/forms") == "docs.google.com"
