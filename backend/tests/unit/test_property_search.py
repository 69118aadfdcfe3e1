"""Tests for PropertyDatabase query parsing and listing search."""

from app.constants import PROPERTY_CORPUS
from app.models.property import PriceType, PropertyCriteria, PropertyType
from app.services.property_search import matches, parse_property_query, search_properties


class TestParsePropertyQuery:
    def test_max_price_bedrooms_location_and_type(self):
        criteria = parse_property_query("Find me a 2BHK apartment in Kathmandu under NPR 30,000")
        assert criteria.max_price == 30000
        assert criteria.min_price is None
        assert criteria.bedrooms == 2
        assert criteria.location == "Kathmandu"
        assert criteria.property_type == PropertyType.APARTMENT

    def test_price_range_with_currency_suffix(self):
        criteria = parse_property_query("2BHK apartments for rent Kupondole budget 30000-40000 NPR")
        assert criteria.min_price == 30000
        assert criteria.max_price == 40000
        assert criteria.price_type == PriceType.RENT

    def test_single_amount_is_a_ceiling(self):
        criteria = parse_property_query("house with a budget of 45000")
        assert criteria.max_price == 45000
        assert criteria.min_price is None

    def test_location_skips_article_and_stopwords(self):
        assert parse_property_query("flat near the Thamel").location == "Thamel"
        assert parse_property_query("investing in my future in Pokhara").location == "Pokhara"

    def test_commercial_wins_over_apartment(self):
        criteria = parse_property_query("commercial space below an apartment block")
        assert criteria.property_type == PropertyType.COMMERCIAL

    def test_land_for_sale(self):
        criteria = parse_property_query("land plot for sale in Godawari")
        assert criteria.property_type == PropertyType.LAND
        assert criteria.price_type == PriceType.SALE

    def test_house_is_matched_as_a_whole_word(self):
        assert parse_property_query("warehouse anywhere").property_type is None

    def test_nothing_recognized(self):
        assert parse_property_query("hello there").is_empty()


class TestMatches:
    def test_empty_criteria_matches_everything(self):
        assert all(matches(listing, PropertyCriteria()) for listing in PROPERTY_CORPUS)

    def test_location_is_case_insensitive_substring(self):
        listing = next(listing for listing in PROPERTY_CORPUS if listing.id == "1")
        assert matches(listing, PropertyCriteria(location="kupondole"))
        assert not matches(listing, PropertyCriteria(location="Thamel"))


class TestSearchProperties:
    def test_two_bhk_kathmandu_under_thirty_thousand(self):
        result = search_properties("Find me a 2BHK apartment in Kathmandu under NPR 30,000")

        ids = [p["id"] for p in result["properties"]]
        assert ids == ["6", "7"]
        assert result["total_found"] == 2
        for listing in result["properties"]:
            assert listing["price"] <= 30000
            assert listing["bedrooms"] == 2
            assert "kathmandu" in listing["location"].lower()
            assert listing["property_type"] == "apartment"

    def test_sorted_by_match_score_descending(self):
        result = search_properties("2BHK apartments for rent Kupondole Kathmandu budget 30000-40000 NPR")
        assert [p["id"] for p in result["properties"]] == ["1", "2"]
        scores = [p["match_score"] for p in result["properties"]]
        assert scores == sorted(scores, reverse=True)

    def test_payload_shape(self):
        result = search_properties("anything")
        assert result["query"] == "anything"
        assert result["search_criteria"] == {}
        assert result["database_stats"]["total_properties"] == len(PROPERTY_CORPUS)
        assert result["total_found"] == len(PROPERTY_CORPUS)

    def test_limit_caps_properties_not_total(self):
        result = search_properties("anything", limit=3)
        assert len(result["properties"]) == 3
        assert result["total_found"] == len(PROPERTY_CORPUS)

    def test_custom_corpus(self):
        corpus = [listing for listing in PROPERTY_CORPUS if listing.id == "5"]
        result = search_properties("land", corpus=corpus)
        assert [p["id"] for p in result["properties"]] == ["5"]
        assert result["database_stats"]["total_properties"] == 1
