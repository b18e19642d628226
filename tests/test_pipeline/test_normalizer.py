"""Tests for ingredient text normalization."""

from verifier.pipeline.normalizer import (
    normalize_text,
    significant_words,
    singularize,
    split_ingredients,
    tokenize,
)


class TestSingularize:
    def test_plain_plural(self):
        assert singularize("carrots") == "carrot"

    def test_ies_plural(self):
        assert singularize("berries") == "berry"

    def test_oes_plural(self):
        assert singularize("tomatoes") == "tomato"

    def test_short_words_untouched(self):
        assert singularize("oats") == "oat"
        assert singularize("gas") == "gas"

    def test_ss_us_is_endings_untouched(self):
        assert singularize("molass") == "molass"
        assert singularize("asparagus") == "asparagus"
        assert singularize("anis") == "anis"


class TestNormalizeText:
    def test_case_and_punctuation(self):
        assert normalize_text("Water, Sugar (Cane).") == "water sugar cane"

    def test_accents_removed(self):
        assert normalize_text("Jalapeño Purée") == "jalapeno puree"

    def test_boilerplate_dropped(self):
        assert "less" not in normalize_text("Salt, Contains 2% or less of: Spices").split()


class TestTokenize:
    def test_stopwords_qualifiers_and_digits_dropped(self):
        tokens = tokenize("Ingredients: Organic Whole Wheat Flour, Vitamin B1 and 2 Eggs")
        assert tokens == ["wheat", "flour", "vitamin", "b1", "egg"]

    def test_significant_words_accepts_list(self):
        assert significant_words(["Water", "Carrots"]) == {"water", "carrot"}


class TestSplitIngredients:
    def test_split_outside_parentheses(self):
        text = "Ingredients: Enriched Flour (Wheat Flour, Niacin), Sugar; Salt."
        assert split_ingredients(text) == ["Enriched Flour (Wheat Flour, Niacin)", "Sugar", "Salt"]

    def test_empty_items_skipped(self):
        assert split_ingredients("Water,, Salt,") == ["Water", "Salt"]
