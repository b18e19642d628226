"""Tests for verification data records."""

import pytest
from pydantic import ValidationError

from verifier.pipeline.records import (
    CandidateURL,
    ConsensusGroup,
    ExtractionMethod,
    ProductQuery,
    RawPage,
    Source,
    VerificationResult,
)


def _source(name, confidence=90, url=""):
    return Source(
        name=name,
        url=url,
        ingredients_text="Water, Salt",
        confidence=confidence,
        extraction_method=ExtractionMethod.DIRECT_PATTERN,
    )


class TestProductQuery:
    def test_whitespace_collapsed(self):
        query = ProductQuery(barcode=" 0123 ", brand="  Campbell's ", name="Tomato   Soup")
        assert query.display_name == "Campbell's Tomato Soup"
        assert query.barcode == "0123"

    def test_name_required(self):
        with pytest.raises(ValidationError):
            ProductQuery(brand="Campbell's", name="   ")

    def test_display_name_without_brand(self):
        assert ProductQuery(name="Tomato Soup").display_name == "Tomato Soup"


class TestDomains:
    def test_candidate_domain_derived_from_url(self):
        candidate = CandidateURL(url="https://www.Kroger.com/p/soup/0001")
        assert candidate.domain == "kroger.com"

    def test_source_domain_derived_from_url(self):
        assert _source("Kroger", url="https://kroger.com/p/1").domain == "kroger.com"

    def test_source_confidence_bounds(self):
        with pytest.raises(ValidationError):
            _source("Kroger", confidence=101)


class TestConsensusGroup:
    def test_representative_and_totals(self):
        group = ConsensusGroup(members=[_source("Amazon", 92), _source("Target", 85)])
        assert group.representative.name == "Amazon"
        assert group.size == 2
        assert group.total_confidence == 177


class TestRawPage:
    def test_normalized_text_joins_text_and_structured_strings(self):
        page = RawPage(
            url="https://example.com",
            content="",
            text="Line one\nLine   two",
            structured_data=[{"a": "Nested", "b": [1, "List item"]}],
        )
        assert page.normalized_text == "Line one Line two Nested List item"


class TestVerificationResult:
    def test_result_is_frozen(self):
        result = VerificationResult(verification_id="v1", product=ProductQuery(name="Soup"))
        with pytest.raises(ValidationError):
            result.requires_manual_entry = True
