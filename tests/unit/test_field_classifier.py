"""Tests for the field classifier rule table."""

import pytest

from field_classifier import (
    FieldClassifier, classify, detect_region, extract_money_amount,
    extract_money_amounts, extract_read_count, is_identifier, map_header,
    marketplace_for_region,
)
from models import FieldKind, HeaderHint, MetricKind, PositionHint


class TestContentRules:
    def test_money_value_parsed(self, classifier):
        c = classifier.classify_cell("$1,234.50")
        assert c.kind == FieldKind.MONEY
        assert c.value == pytest.approx(1234.50)

    def test_identifier(self, classifier):
        assert classifier.classify("B0BWFC3554") == FieldKind.IDENTIFIER

    def test_title(self, classifier):
        assert classifier.classify("Empath and Psychic Abilities") == FieldKind.TITLE

    def test_multi_amount_cell_is_summed(self, classifier):
        c = classifier.classify_cell("$10.00 + $2.50")
        assert c.kind == FieldKind.MONEY
        assert c.value == pytest.approx(12.50)

    def test_small_integer_is_units(self, classifier):
        c = classifier.classify_cell("42")
        assert c.kind == FieldKind.COUNT
        assert c.value == 42
        assert c.metric == MetricKind.UNITS

    def test_large_integer_is_reads(self, classifier):
        c = classifier.classify_cell("15,320")
        assert c.kind == FieldKind.COUNT
        assert c.value == 15320
        assert c.metric == MetricKind.READS

    def test_kenp_keyword_is_reads(self, classifier):
        c = classifier.classify_cell("238 KENP")
        assert c.kind == FieldKind.COUNT
        assert c.value == 238
        assert c.metric == MetricKind.READS

    def test_unit_count_is_not_a_title(self, classifier):
        c = classifier.classify_cell("12 units")
        assert c.kind == FieldKind.COUNT
        assert c.value == 12
        assert c.metric == MetricKind.UNITS
        assert classifier.classify("5 copies") == FieldKind.COUNT

    def test_pages_read_count_is_not_a_title(self, classifier):
        c = classifier.classify_cell("1,200 pages read")
        assert c.kind == FieldKind.COUNT
        assert c.value == 1200
        assert c.metric == MetricKind.READS

    def test_region_from_marketplace(self, classifier):
        c = classifier.classify_cell("Amazon.co.uk")
        assert c.kind == FieldKind.REGION
        assert c.value == "UK"

    def test_ui_vocabulary_is_not_title(self, classifier):
        for text in ["Dashboard", "Total Royalties", "Export", "Loading..."]:
            assert classifier.classify(text) != FieldKind.TITLE

    def test_long_all_caps_is_not_title(self, classifier):
        assert classifier.classify("THIS IS A VERY LONG SHOUTED HEADING") == FieldKind.UNKNOWN

    def test_short_all_caps_is_title(self, classifier):
        assert classifier.classify("GRIT") == FieldKind.TITLE

    def test_disallowed_characters_are_not_title(self, classifier):
        assert classifier.classify("Book <script>") == FieldKind.UNKNOWN

    def test_title_length_bounds(self, classifier):
        assert classifier.classify("Ab") != FieldKind.TITLE
        assert classifier.classify("a" * 301) != FieldKind.TITLE
        assert classifier.classify("a" * 300) == FieldKind.TITLE

    def test_unknown_on_garbage(self, classifier):
        assert classifier.classify("--- / ---") == FieldKind.UNKNOWN
        assert classifier.classify("") == FieldKind.UNKNOWN
        assert classifier.classify(None) == FieldKind.UNKNOWN
        assert classifier.classify(12.5) == FieldKind.UNKNOWN


class TestRuleTable:
    def test_rules_are_ordered_title_first(self, classifier):
        kinds = [kind for _, kind in classifier.rules]
        assert kinds == [
            FieldKind.TITLE, FieldKind.IDENTIFIER, FieldKind.MONEY,
            FieldKind.COUNT, FieldKind.REGION,
        ]

    def test_each_rule_predicate_is_independent(self, classifier):
        predicates = dict((kind, pred) for pred, kind in classifier.rules)
        assert predicates[FieldKind.TITLE]("Shadow Work Journal")
        assert predicates[FieldKind.IDENTIFIER]("1734567890")
        assert predicates[FieldKind.MONEY]("€3,10")
        assert predicates[FieldKind.COUNT]("17")
        assert predicates[FieldKind.REGION]("amazon.de")

    def test_heading_hint_only_considers_titles(self, classifier):
        assert classifier.classify("$5.00", PositionHint.HEADING) == FieldKind.UNKNOWN
        assert classifier.classify("Shadow Work Journal", PositionHint.HEADING) == FieldKind.TITLE

    def test_object_field_hint_only_considers_titles(self, classifier):
        assert classifier.classify("$5.00", PositionHint.OBJECT_FIELD) == FieldKind.UNKNOWN
        assert classifier.classify("B0BWFC3554", PositionHint.OBJECT_FIELD) == FieldKind.UNKNOWN
        assert classifier.classify("The Quiet Garden", PositionHint.OBJECT_FIELD) == FieldKind.TITLE

    def test_is_known(self, classifier):
        assert classifier.classify_cell("$5.00").is_known
        assert not classifier.classify_cell("--- / ---").is_known


class TestHeaderHints:
    def test_header_hint_overrides_content(self, classifier):
        hint = HeaderHint(FieldKind.MONEY)
        c = classifier.classify_cell("12.40", header_hint=hint)
        assert c.kind == FieldKind.MONEY
        assert c.value == pytest.approx(12.40)

    def test_header_title_trusted_over_blocklist(self, classifier):
        c = classifier.classify_cell("The Amazon Rainforest", header_hint=HeaderHint(FieldKind.TITLE))
        assert c.kind == FieldKind.TITLE
        assert c.value == "The Amazon Rainforest"

    def test_header_count_keeps_metric(self, classifier):
        c = classifier.classify_cell("238", header_hint=HeaderHint(FieldKind.COUNT, MetricKind.READS))
        assert c.metric == MetricKind.READS
        assert c.value == 238

    def test_header_money_with_no_number_is_unknown(self, classifier):
        c = classifier.classify_cell("—", header_hint=HeaderHint(FieldKind.MONEY))
        assert c.kind == FieldKind.UNKNOWN

    def test_map_header(self):
        assert map_header("Title") == HeaderHint(FieldKind.TITLE)
        assert map_header("ASIN") == HeaderHint(FieldKind.IDENTIFIER)
        assert map_header("Royalty:") == HeaderHint(FieldKind.MONEY)
        assert map_header("KENP Pages Read") == HeaderHint(FieldKind.COUNT, MetricKind.READS)
        assert map_header("Net Units Sold") == HeaderHint(FieldKind.COUNT, MetricKind.UNITS)
        assert map_header("Marketplace") == HeaderHint(FieldKind.REGION)
        assert map_header("Estimated KENP Royalty (USD)") == HeaderHint(FieldKind.MONEY)
        assert map_header("Notes") is None
        assert map_header(None) is None


class TestHelpers:
    def test_is_identifier_requires_digit(self):
        assert is_identifier("B0BWFC3554")
        assert not is_identifier("BESTSELLER")
        assert not is_identifier("b0bwfc3554")

    def test_money_amounts(self):
        assert extract_money_amounts("Paid $1.50, then £2") == [1.50, 2.0]
        assert extract_money_amount("no money here") == 0

    def test_unrepresentable_money_is_skipped(self):
        assert extract_money_amounts("$" + "9" * 400 + " and $2.00") == [2.0]

    def test_read_count(self):
        assert extract_read_count("KENP Read: 1,234 pages") == 1234
        assert extract_read_count("nothing") == 0

    def test_detect_region_longest_suffix(self):
        assert detect_region("amazon.com.au") == "AU"
        assert detect_region("www.amazon.de") == "DE"
        assert detect_region("amazon.com") == "US"
        assert detect_region("no domain") is None

    def test_marketplace_for_region(self):
        assert marketplace_for_region("DE") == "amazon.de"
        assert marketplace_for_region("uk") == "amazon.co.uk"
        assert marketplace_for_region("ZZ") is None
        assert marketplace_for_region(None) is None

    def test_module_level_classify(self):
        assert classify("B0BWFC3554") == FieldKind.IDENTIFIER

    def test_units_ceiling_is_configurable(self, settings):
        tight = FieldClassifier(settings.model_copy(update={"units_ceiling": 100}))
        c = tight.classify_cell("500")
        assert c.metric == MetricKind.READS
