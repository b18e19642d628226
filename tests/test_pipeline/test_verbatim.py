"""Tests for pattern-based verbatim ingredient extraction."""

import json

from verifier.browser.fetcher import parse_page
from verifier.pipeline.verbatim import (
    CONTAINER_CONFIDENCE,
    LABELED_TEXT_CONFIDENCE,
    STRUCTURED_DATA_CONFIDENCE,
    extract_verbatim,
    is_plausible_ingredient_list,
)

SOUP_INGREDIENTS = (
    "Tomato Puree (Water, Tomato Paste), High Fructose Corn Syrup, Wheat Flour, "
    "Water, Salt, Potassium Chloride, Citric Acid."
)

LABELED_PAGE = f"""
<html><head><title>Campbell's Condensed Tomato Soup</title></head>
<body>
  <nav>Home | Soup | Ingredients</nav>
  <h1>Campbell's Condensed Tomato Soup, 10.75 oz</h1>
  <div class="details">
    <h2>Ingredients</h2>
    <p>{SOUP_INGREDIENTS}</p>
    <p>Contains: Wheat.</p>
  </div>
</body></html>
"""


def _structured_page(ingredients):
    data = {"@context": "https://schema.org", "@type": "Product", "name": "Cola", "ingredients": ingredients}
    return f"""
<html><head><script type="application/ld+json">{json.dumps(data)}</script></head>
<body><h1>Cola</h1><p>Refreshing since 1886.</p></body></html>
"""


class TestPlausibility:
    def test_real_list_is_plausible(self):
        assert is_plausible_ingredient_list(SOUP_INGREDIENTS)

    def test_marketing_copy_rejected(self):
        assert not is_plausible_ingredient_list(
            "Enjoy our delicious soup, made with love, perfect for lunch"
        )

    def test_tab_headers_rejected(self):
        assert not is_plausible_ingredient_list("Ingredients, Nutrition, Reviews, Details")

    def test_text_without_commas_rejected(self):
        assert not is_plausible_ingredient_list("Water Sugar Salt Natural Flavors")

    def test_long_prose_segment_rejected(self):
        assert not is_plausible_ingredient_list(
            "This soup is made from the finest tomatoes grown in sunny fields and slowly "
            "simmered for hours, salt"
        )

    def test_too_short_rejected(self):
        assert not is_plausible_ingredient_list("Water, Salt")


class TestExtractVerbatim:
    def test_labeled_text(self):
        page = parse_page("https://www.target.com/p/soup/-/A-1", LABELED_PAGE)
        result = extract_verbatim(page)
        assert result is not None
        assert result.strategy == "labeled_text"
        assert result.confidence == LABELED_TEXT_CONFIDENCE
        assert result.text == SOUP_INGREDIENTS

    def test_allergen_statement_not_included(self):
        page = parse_page("https://www.target.com/p/soup/-/A-1", LABELED_PAGE)
        result = extract_verbatim(page)
        assert "Contains" not in result.text

    def test_structured_data_preferred(self):
        page = parse_page(
            "https://www.walmart.com/ip/cola/1",
            _structured_page("Carbonated Water, Sugar, Caramel Color, Phosphoric Acid, Caffeine"),
        )
        result = extract_verbatim(page)
        assert result is not None
        assert result.strategy == "structured_data"
        assert result.confidence == STRUCTURED_DATA_CONFIDENCE
        assert result.text.startswith("Carbonated Water")

    def test_ingredient_container(self):
        html = """
<html><body><h1>Chocolate Wafers</h1>
<div class="product-ingredients"><span>Enriched flour, sugar, palm oil, cocoa, salt</span></div>
</body></html>
"""
        page = parse_page("https://www.kroger.com/p/wafers/1", html)
        result = extract_verbatim(page)
        assert result is not None
        assert result.strategy == "container"
        assert result.confidence == CONTAINER_CONFIDENCE
        assert result.text == "Enriched flour, sugar, palm oil, cocoa, salt"

    def test_page_without_ingredients(self):
        html = "<html><body><h1>Tomato Soup</h1><p>Add to cart. Free shipping.</p></body></html>"
        assert extract_verbatim(parse_page("https://www.target.com/p/soup/-/A-2", html)) is None

    def test_result_is_substring_of_page_text(self):
        for html in (LABELED_PAGE, _structured_page("Water, Barley Malt, Hops, Yeast")):
            page = parse_page("https://example.com/p/1", html)
            result = extract_verbatim(page)
            assert result is not None
            assert result.text in page.normalized_text
