"""Tests for card text heuristics."""

import pytest

from govwatch.heuristics import (
    extract_amount,
    extract_date,
    extract_ministry,
    extract_vendor,
    is_candidate_text,
)

CARD_TEXT = (
    "Kementerian Kesihatan Malaysia\n"
    "Syarikat: Acme Medic Sdn Bhd\n"
    "Nilai: RM 1,250,000.00\n"
    "Tarikh: 01/03/2024"
)


def test_candidate_text_requires_currency_and_keyword():
    assert is_candidate_text(CARD_TEXT)
    assert not is_candidate_text("Kementerian Kesihatan Malaysia tanpa nilai wang sama sekali")
    assert not is_candidate_text("RM 100 for something unrelated to any agency at all")


def test_candidate_text_length_bounds():
    assert not is_candidate_text("Kementerian RM 5")
    assert not is_candidate_text("Kementerian RM 5 " + "x" * 2000)
    assert not is_candidate_text("")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Nilai: RM 1,250,000.00", 1250000.0),
        ("RM480,500.50 sahaja", 480500.5),
        ("Jumlah RM 12", 12.0),
        ("Nilai: RM 0.00", None),
        ("Tiada nilai", None),
        ("platform 3", None),
    ],
)
def test_extract_amount(text, expected):
    assert extract_amount(text) == expected


def test_extract_amount_uses_first_match():
    assert extract_amount("RM 5,000.00 (asal RM 9,000.00)") == 5000.0


def test_extract_date_returns_iso():
    assert extract_date(CARD_TEXT) == "2024-03-01"
    assert extract_date("Tarikh 15-02-2024") == "2024-02-15"
    assert extract_date("Tarikh 31.12.2023") == "2023-12-31"


def test_extract_date_skips_impossible_dates():
    assert extract_date("Rujukan 45/99/2024, tarikh 02/01/2024") == "2024-01-02"
    assert extract_date("tiada tarikh") is None


def test_extract_ministry_keeps_name_prefix():
    assert extract_ministry(CARD_TEXT) == "Kementerian Kesihatan Malaysia"
    assert extract_ministry("Jabatan Kerja Raya\nRM 100") == "Jabatan Kerja Raya"


def test_extract_ministry_from_label():
    assert extract_ministry("Agency: Lembaga Hasil Dalam Negeri\nRM 100") == "Lembaga Hasil Dalam Negeri"


def test_extract_vendor_after_colon():
    assert extract_vendor(CARD_TEXT) == "Acme Medic Sdn Bhd"
    assert extract_vendor("Petender: Binaan Maju Enterprise") == "Binaan Maju Enterprise"


def test_extract_vendor_strips_label_without_colon():
    assert extract_vendor("Oleh Binaan Maju Enterprise") == "Binaan Maju Enterprise"


def test_extract_vendor_keeps_company_prefix_without_colon():
    assert extract_vendor("Syarikat Bumi Hijau") == "Syarikat Bumi Hijau"


def test_labels_without_value_are_skipped():
    text = "Syarikat\nVendor: Kilang Cahaya Sdn Bhd"
    assert extract_vendor(text) == "Kilang Cahaya Sdn Bhd"


def test_overlong_values_are_rejected():
    assert extract_vendor("Vendor: " + "A" * 200) is None
    assert extract_ministry("no keyword here") is None
