import unittest

from cardshelf.formatting import (
    cache_busted,
    download_filename,
    format_order,
    search_haystack,
    slugify,
)
from cardshelf.models import CardRecord, StoredDocument, coerce_order
from cardshelf.views import (
    ALL_CATEGORIES,
    RecordFilter,
    build_pairs,
    filter_records,
    reconcile_category,
    sort_records,
)


def card(record_id, category, order, side="front", path=""):
    return CardRecord(
        id=record_id, category=category, side=side, order=order, storage_path=path
    )


class CoerceOrderTests(unittest.TestCase):
    def test_integral_values_become_int(self):
        self.assertEqual(coerce_order("3"), 3)
        self.assertIsInstance(coerce_order(2.0), int)
        self.assertEqual(coerce_order(" 1.5 "), 1.5)

    def test_non_finite_or_missing_values_are_rejected(self):
        too_large = 10**400
        values = (None, "", "abc", float("nan"), float("inf"), "-inf", True, too_large)
        for value in values:
            self.assertIsNone(coerce_order(value), value)


class RecordParsingTests(unittest.TestCase):
    def test_soft_deleted_documents_are_dropped(self):
        doc = StoredDocument(
            id="x", data={"category": "A", "side": "front", "order": 1, "deleted": True}
        )
        self.assertIsNone(CardRecord.from_document(doc))
        self.assertIsNone(CardRecord.from_document(doc, strict=True))

    def test_strict_parse_requires_category_side_and_order(self):
        doc = StoredDocument(id="x", data={"category": " ", "side": "front", "order": 1})
        self.assertIsNotNone(CardRecord.from_document(doc))
        self.assertIsNone(CardRecord.from_document(doc, strict=True))

        no_order = StoredDocument(id="y", data={"category": "A", "side": "back"})
        self.assertIsNone(CardRecord.from_document(no_order, strict=True))

    def test_incomplete_record_survives_strict_parse(self):
        doc = StoredDocument(
            id="x", data={"category": "A", "side": "front", "order": 1, "storagePath": ""}
        )
        record = CardRecord.from_document(doc, strict=True)
        self.assertIsNotNone(record)
        self.assertFalse(record.is_complete)


class FilterAndSortTests(unittest.TestCase):
    def test_category_and_text_filters_combine(self):
        records = [card("1", "A", 1), card("2", "A", 2), card("3", "B", 2)]
        record_filter = RecordFilter.from_input("2", "A")
        result = filter_records(records, record_filter)
        self.assertEqual([r.id for r in result], ["2"])

    def test_text_filter_is_case_insensitive_over_category_side_order(self):
        records = [card("1", "Dragons", 1, side="back"), card("2", "Elves", 7)]
        self.assertEqual(
            [r.id for r in filter_records(records, RecordFilter.from_input("  DRAG "))],
            ["1"],
        )
        self.assertEqual(
            [r.id for r in filter_records(records, RecordFilter.from_input("back 1"))],
            ["1"],
        )

    def test_sort_by_category_then_numeric_order(self):
        records = [card("b1", "B", 1), card("a2", "A", 2), card("a1", "A", 1)]
        self.assertEqual([r.id for r in sort_records(records)], ["a1", "a2", "b1"])

    def test_numeric_not_lexicographic_order(self):
        records = [card("ten", "A", 10), card("two", "A", 2)]
        self.assertEqual([r.id for r in sort_records(records)], ["two", "ten"])

    def test_reconcile_category_falls_back_when_missing(self):
        self.assertEqual(reconcile_category("A", {"A", "B"}), "A")
        self.assertEqual(reconcile_category("C", {"A", "B"}), ALL_CATEGORIES)


class PairingTests(unittest.TestCase):
    def test_front_and_back_form_one_pair(self):
        pairs = build_pairs(
            [
                card("f", "A", 1, side="front", path="p1"),
                card("b", "A", 1, side="back", path="p2"),
            ]
        )
        self.assertEqual(len(pairs), 1)
        pair = pairs[0]
        self.assertEqual((pair.category, pair.order), ("A", 1))
        self.assertEqual(pair.front.storage_path, "p1")
        self.assertEqual(pair.back.storage_path, "p2")

    def test_lone_front_leaves_back_empty(self):
        pairs = build_pairs([card("f", "A", 3, side="front", path="p1")])
        self.assertEqual(len(pairs), 1)
        self.assertIsNone(pairs[0].back)

    def test_last_duplicate_wins(self):
        pairs = build_pairs(
            [card("first", "A", 1, path="p1"), card("second", "A", 1, path="p2")]
        )
        self.assertEqual(pairs[0].front.id, "second")

    def test_pairs_sorted_by_category_then_order(self):
        pairs = build_pairs([card("1", "B", 1), card("2", "A", 2), card("3", "A", 1)])
        self.assertEqual([(p.category, p.order) for p in pairs], [("A", 1), ("A", 2), ("B", 1)])


class FormattingTests(unittest.TestCase):
    def test_slugify(self):
        self.assertEqual(slugify("  Hello   World! "), "hello-world")
        self.assertEqual(slugify("ไทย"), "category")
        self.assertEqual(slugify(""), "category")
        self.assertEqual(slugify(None), "category")
        self.assertEqual(len(slugify("x" * 100)), 60)
        self.assertEqual(slugify("a_b.c-d"), "a_b.c-d")

    def test_download_filename(self):
        record = card("1", "Fire Set", 4, side="back", path="templates/1.png")
        self.assertEqual(download_filename(record), "fire-set_order-4_back.png")

    def test_format_order_and_haystack(self):
        self.assertEqual(format_order(2.0), "2")
        self.assertEqual(format_order(2.5), "2.5")
        self.assertEqual(format_order(None), "")
        self.assertEqual(search_haystack(card("1", "Alpha", 3)), "alpha front 3")

    def test_cache_busted(self):
        self.assertEqual(cache_busted("https://x/a.png", 5), "https://x/a.png?t=5")
        self.assertEqual(cache_busted("https://x/a.png?k=1", 5), "https://x/a.png?k=1&t=5")


if __name__ == "__main__":
    unittest.main()
