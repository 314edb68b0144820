import json
from pathlib import Path

import pytest

import govwatch
from govwatch.ministry_matching import DEFAULT_MINISTRY_CONFIG_PATH, MinistryMatcher
from govwatch.models import UNKNOWN_MINISTRY


@pytest.fixture(scope="module")
def matcher():
    return MinistryMatcher()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("KEMENTERIAN KESIHATAN MALAYSIA", "Kementerian Kesihatan"),
        ("Kementerian Kesihatan", "Kementerian Kesihatan"),
        ("KKM", "Kementerian Kesihatan"),
        ("Ministry of Finance", "Kementerian Kewangan"),
        ("JKR", "Jabatan Kerja Raya"),
    ],
)
def test_exact_aliases(matcher, raw, expected):
    assert matcher.canonicalize(raw) == expected


def test_keyword_rules_respect_exclusions(matcher):
    assert matcher.canonicalize("KEMENTERIAN PENDIDIKAN TINGGI (BAHAGIAN PEROLEHAN)") == "Kementerian Pendidikan Tinggi"
    assert matcher.canonicalize("Bahagian Kewangan, Kementerian Pendidikan") == "Kementerian Pendidikan"
    assert matcher.canonicalize("Ibu Pejabat Jabatan Kerja Raya Negeri Perak") == "Jabatan Kerja Raya"
    assert matcher.canonicalize("KEMENTERIAN DALAM NEGERI") == "Kementerian Dalam Negeri"


def test_fuzzy_match_handles_typos(matcher):
    assert matcher.canonicalize("Kementrian Kesihatn") == "Kementerian Kesihatan"


def test_unmatched_names_are_title_cased(matcher):
    assert matcher.canonicalize("LEMBAGA PELABUHAN KELANG") == "Lembaga Pelabuhan Kelang"


def test_blank_and_sentinel_names(matcher):
    assert matcher.canonicalize(None) == UNKNOWN_MINISTRY
    assert matcher.canonicalize("   ") == UNKNOWN_MINISTRY
    assert matcher.canonicalize(UNKNOWN_MINISTRY) == UNKNOWN_MINISTRY


def test_custom_config_file(tmp_path):
    config_path = tmp_path / "ministries.json"
    config_path.write_text(
        json.dumps({"ministries": [{"name": "Kementerian Ekonomi", "aliases": ["KE"], "keywords": ["EKONOMI"]}]}),
        encoding="utf-8",
    )
    matcher = MinistryMatcher(config_path=config_path)
    assert matcher.canonicalize("ke") == "Kementerian Ekonomi"
    assert matcher.canonicalize("Unit Perancang Ekonomi") == "Kementerian Ekonomi"


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        MinistryMatcher(config_path=tmp_path / "missing.json")


def test_default_dataset_ships_with_the_package():
    package_dir = Path(govwatch.__file__).resolve().parent
    assert DEFAULT_MINISTRY_CONFIG_PATH.parent.parent == package_dir
    assert DEFAULT_MINISTRY_CONFIG_PATH.is_file()
