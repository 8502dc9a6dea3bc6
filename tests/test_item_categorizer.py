"""
Tests for batched line-item categorization and its response parsing.
"""
import asyncio

import pytest

from packages.common.schemas.receipt_normalized import LineItem, TaxonomyEntry
from packages.domain.categorization.item_categorizer import (
    ItemCategorizer,
    parse_id_array,
    reconcile_ids,
)

TAXONOMY = [
    TaxonomyEntry(id="1", name="Groceries"),
    TaxonomyEntry(id="2", name="Health"),
    TaxonomyEntry(id="c3a1", name="Transport"),
]

ITEMS = [
    LineItem(name="Mleko 2% 1L"),
    LineItem(name="Apap 10 tabl."),
    LineItem(name="Bilet ZTM 75 min"),
]


def categorize(generator, items=ITEMS, taxonomy=TAXONOMY):
    return asyncio.run(ItemCategorizer(generator).categorize(items, taxonomy))


class TestParsing:
    def test_plain_array(self):
        assert parse_id_array('["1", null, "c3a1"]') == ["1", None, "c3a1"]

    def test_code_fence(self):
        assert parse_id_array('```json\n["1", "2", null]\n```') == ["1", "2", None]

    def test_array_inside_prose(self):
        text = 'Sure! Here are the categories: ["1", "2", "c3a1"] Let me know if you need more.'
        assert parse_id_array(text) == ["1", "2", "c3a1"]

    @pytest.mark.parametrize("text", [None, "", "no idea", '{"items": 3}', "[1, 2"])
    def test_unparseable(self, text):
        assert parse_id_array(text) is None


class TestReconcile:
    def test_unknown_ids_become_null(self):
        assert reconcile_ids(["1", "999", "Groceries", None], 4, TAXONOMY) == ["1", None, None, None]

    def test_numeric_ids_match_string_ids(self):
        assert reconcile_ids([1, 2.0, True], 3, TAXONOMY) == ["1", None, None]

    def test_pads_short_and_truncates_long(self):
        assert reconcile_ids(["1"], 3, TAXONOMY) == ["1", None, None]
        assert reconcile_ids(["1", "2", "c3a1", "1"], 2, TAXONOMY) == ["1", "2"]


class TestCategorize:
    def test_single_batched_call(self, fake_generator):
        generator = fake_generator('["1", "2", "c3a1"]')

        assert categorize(generator) == ["1", "2", "c3a1"]
        assert len(generator.prompts) == 1
        prompt = generator.prompts[0]
        for item in ITEMS:
            assert item.name in prompt
        for entry in TAXONOMY:
            assert f'"{entry.id}"' in prompt and entry.name in prompt

    def test_every_returned_id_is_in_taxonomy(self, fake_generator):
        ids = categorize(fake_generator('```\n["2", "bogus", 7]\n```'))

        assert ids == ["2", None, None]
        valid = {entry.id for entry in TAXONOMY}
        assert all(i is None or i in valid for i in ids)

    def test_garbage_response_gives_all_nulls(self, fake_generator):
        assert categorize(fake_generator("I cannot help with that.")) == [None, None, None]

    def test_short_response_is_padded(self, fake_generator):
        assert categorize(fake_generator('["1"]')) == ["1", None, None]

    def test_generator_error_gives_all_nulls(self, fake_generator):
        assert categorize(fake_generator(error=RuntimeError("overloaded"))) == [None, None, None]

    def test_no_generator(self):
        assert categorize(None) == [None, None, None]

    def test_empty_taxonomy_skips_call(self, fake_generator):
        generator = fake_generator('["1", "2", "c3a1"]')
        assert categorize(generator, taxonomy=[]) == [None, None, None]
        assert generator.prompts == []

    def test_no_items(self, fake_generator):
        generator = fake_generator("[]")
        assert categorize(generator, items=[]) == []
        assert generator.prompts == []
