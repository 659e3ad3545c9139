import pytest

from stockbot.parsing.extractor import UpdateExtractor
from stockbot.parsing.segmenter import UtteranceSegmenter
from stockbot.parsing.types import UNKNOWN_PRODUCT, Action


@pytest.fixture()
def extractor(catalog):
    return UpdateExtractor(catalog)


@pytest.fixture()
def segmenter(catalog):
    return UtteranceSegmenter(catalog.delimiters)


def test_sale_is_negative(extractor):
    update = extractor.extract("10 Parle-G sold")

    assert update.product == "Parle-G"
    assert update.quantity == -10
    assert update.action is Action.SOLD
    assert update.unit == "pieces"
    assert update.is_valid


def test_purchase_with_attached_unit(extractor):
    update = extractor.extract("5kg sugar purchased")

    assert (update.product, update.quantity, update.unit, update.action) == ("Sugar", 5, "kg", Action.PURCHASED)


def test_decimal_quantity_keeps_attached_unit(extractor):
    update = extractor.extract("2.5kg sugar purchased")

    assert (update.product, update.quantity, update.unit, update.action) == ("Sugar", 2.5, "kg", Action.PURCHASED)


def test_decimal_sale_with_spaced_unit(extractor):
    update = extractor.extract("1.5 litre milk sold")

    assert (update.quantity, update.unit) == (-1.5, "l")


def test_remaining_is_positive(extractor):
    update = extractor.extract("2 litre milk remaining")

    assert update.quantity == 2
    assert update.unit == "l"
    assert update.action is Action.REMAINING


def test_spelled_numbers_and_following_unit(extractor):
    english = extractor.extract("twenty-five maggi sold")
    hindi = extractor.extract("paanch kilo chini kharida")

    assert english.quantity == -25
    assert (hindi.product, hindi.quantity, hindi.unit, hindi.action) == ("Sugar", 5, "kg", Action.PURCHASED)


def test_devanagari_sale(extractor):
    update = extractor.extract("10 पारले जी बेचा")

    assert update.product == "Parle-G"
    assert update.quantity == -10


def test_missing_action_defaults_to_sold(extractor):
    update = extractor.extract("10 Parle-G")

    assert update.action is Action.SOLD
    assert update.quantity == -10


def test_strict_mode_rejects_clause_without_action(catalog):
    strict = UpdateExtractor(catalog, require_action_keyword=True)

    update = strict.extract("10 Parle-G")

    assert update.action is None
    assert not update.is_valid


def test_single_letter_unit_not_read_from_product_name(extractor):
    assert extractor.extract("Parle G 4 sold").unit == "pieces"
    assert extractor.extract("500 g tea bought").unit == "g"


def test_invalid_clauses_are_counted_not_returned(extractor):
    result = extractor.extract_all(["10 Parle-G sold", "hello there", "maggi sold"])

    assert result.total_clauses == 3
    assert result.valid_clauses == 1
    assert [update.product for update in result.updates] == ["Parle-G"]
    assert {update.product for update in result.rejected} == {UNKNOWN_PRODUCT, "Maggi"}


def test_multi_clause_message_keeps_order(extractor, segmenter):
    result = extractor.extract_all(segmenter.split("10 Parle-G sold. 5kg sugar purchased"))

    assert [(u.product, u.quantity) for u in result.updates] == [("Parle-G", -10), ("Sugar", 5)]
