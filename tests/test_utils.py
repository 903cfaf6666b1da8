"""Tests for shared utility functions."""

import time

from src.utils import elapsed_ms, normalize_phone, slug_to_label


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("0812 3456 7890") == "081234567890"

    def test_strips_dashes(self):
        assert normalize_phone("0812-3456-7890") == "081234567890"

    def test_country_code_becomes_local(self):
        assert normalize_phone("+62 812-3456-7890") == "081234567890"
        assert normalize_phone("6281234567890") == "081234567890"

    def test_clean_number_unchanged(self):
        assert normalize_phone("081234567890") == "081234567890"

    def test_strips_whitespace_and_parentheses(self):
        assert normalize_phone("  (0812) 3456 7890  ") == "081234567890"


class TestSlugToLabel:
    def test_underscores_become_spaces(self):
        assert slug_to_label("lampu_mati") == "lampu mati"

    def test_plain_word(self):
        assert slug_to_label("banjir") == "banjir"


class TestElapsedMs:
    def test_non_negative(self):
        assert elapsed_ms(time.monotonic()) >= 0

    def test_measures_past_start(self):
        assert elapsed_ms(time.monotonic() - 1.5) >= 1500
