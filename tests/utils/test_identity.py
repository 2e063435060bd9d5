"""Tests for WhatsApp identifier normalisation."""

from kknbot.util.identity import make_normalizer, normalize_to_phone, to_jid


class TestNormalizeToPhone:
    def test_strips_user_suffixes(self):
        assert normalize_to_phone("628123456789@s.whatsapp.net") == "628123456789"
        assert normalize_to_phone("628123456789@c.us") == "628123456789"

    def test_strips_device_suffix(self):
        assert normalize_to_phone("628123456789:12@s.whatsapp.net") == "628123456789"

    def test_typed_numbers(self):
        assert normalize_to_phone("@628123456789") == "628123456789"
        assert normalize_to_phone("+628123456789") == "628123456789"

    def test_local_number_gets_country_code(self):
        assert normalize_to_phone("08123456789") == "628123456789"
        assert normalize_to_phone("08123456789", country_code="60") == "608123456789"

    def test_lid_is_mapped(self):
        assert normalize_to_phone("99887766@lid", {"99887766": "628123456789"}) == "628123456789"
        assert normalize_to_phone("99887766:3@lid", {"99887766": "628123456789"}) == "628123456789"

    def test_unmapped_lid_is_kept(self):
        assert normalize_to_phone("99887766@lid", {}) == "99887766"

    def test_empty_input(self):
        assert normalize_to_phone("") == ""
        assert normalize_to_phone(None) == ""

    def test_all_shapes_compare_equal(self):
        mapping = {"4455": "628123456789"}
        shapes = [
            "628123456789@s.whatsapp.net",
            "628123456789:7@s.whatsapp.net",
            "628123456789@c.us",
            "4455@lid",
            "08123456789",
        ]
        assert {normalize_to_phone(shape, mapping) for shape in shapes} == {"628123456789"}


def test_to_jid():
    assert to_jid("628123") == "628123@s.whatsapp.net"


def test_make_normalizer_follows_config_changes():
    class Config:
        lid_to_phone_mapping = {}
        country_code = "62"

    config = Config()
    normalize = make_normalizer(config)
    assert normalize("111@lid") == "111"

    config.lid_to_phone_mapping = {"111": "628999"}
    assert normalize("111@lid") == "628999"
