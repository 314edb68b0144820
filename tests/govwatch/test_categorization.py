import pytest

from govwatch.categorization import CategoryClassifier, MethodClassifier


@pytest.fixture
def method_classifier():
    return MethodClassifier()


@pytest.fixture
def category_classifier():
    return CategoryClassifier()


@pytest.mark.parametrize(
    "method",
    ["Rundingan Terus", "Direct Negotiation", "DIRECT AWARD", "Perolehan secara terus", "negotiated"],
)
def test_direct_method_tokens(method_classifier, method):
    assert method_classifier.classify(method=method) == MethodClassifier.METHOD_DIRECT


def test_default_is_open_tender(method_classifier):
    assert method_classifier.classify() == MethodClassifier.METHOD_OPEN
    assert method_classifier.classify(method="Tender Terbuka") == MethodClassifier.METHOD_OPEN
    assert method_classifier.classify(method="Sebut Harga") == MethodClassifier.METHOD_OPEN


def test_source_name_and_url_are_secondary_hints(method_classifier):
    assert method_classifier.classify(source_name="Rundingan Terus") == MethodClassifier.METHOD_DIRECT
    assert (
        method_classifier.classify(url="https://myprocurement.treasury.gov.my/archive/direct-negotiations")
        == MethodClassifier.METHOD_DIRECT
    )
    assert (
        method_classifier.classify(url="https://myprocurement.treasury.gov.my/archive/results-tender")
        == MethodClassifier.METHOD_OPEN
    )


def test_custom_direct_tokens():
    classifier = MethodClassifier(custom_tokens=["Pelantikan Khas"])
    assert classifier.classify(method="pelantikan khas menteri") == MethodClassifier.METHOD_DIRECT


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Kerja", "Kerja"),
        ("WORKS", "Kerja"),
        ("bekalan", "Bekalan"),
        ("Supplies", "Bekalan"),
        ("Perkhidmatan", "Perkhidmatan"),
        ("services", "Perkhidmatan"),
        ("Kerja Awam", "Kerja"),
        ("Bekalan & Perkhidmatan", "Bekalan"),
        ("Umum", "General"),
    ],
)
def test_category_synonyms(category_classifier, raw, expected):
    assert category_classifier.categorize(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_category_defaults_to_general(category_classifier, raw):
    assert category_classifier.categorize(raw) == CategoryClassifier.CATEGORY_GENERAL


def test_unknown_category_text_is_kept(category_classifier):
    assert category_classifier.categorize("  Teknologi   Maklumat ") == "Teknologi Maklumat"
    assert category_classifier.normalize_category_name("Teknologi Maklumat") is None


def test_custom_category_aliases():
    classifier = CategoryClassifier(custom_rules={"aliases": {"ict": "Perkhidmatan"}})
    assert classifier.categorize("ICT") == "Perkhidmatan"
