"""Tests for clarification detection and preference extraction heuristics."""

from app.agents.heuristics import (
    ExtractedPreferences,
    extract_amenities,
    extract_bedrooms,
    extract_budget,
    extract_locations,
    extract_preferences,
    extract_property_types,
    merge_preferences,
    needs_clarification,
)
from app.models.memory import PriceRange, UserPreferences


def _preferences(**kwargs) -> UserPreferences:
    return UserPreferences(id="pref-1", user_id="u1", updated_at_ms=0, **kwargs)


class TestNeedsClarification:
    def test_question_with_phrase(self):
        assert needs_clarification("Could you tell me your budget?")

    def test_phrase_without_question_mark(self):
        assert not needs_clarification("Please tell me more when you are ready.")

    def test_question_without_phrase(self):
        assert not needs_clarification("Is Lazimpat within your commute?")

    def test_case_insensitive(self):
        assert needs_clarification("WHAT KIND OF property do you want?")


class TestExtractBudget:
    def test_under_amount(self):
        assert extract_budget("something under 30000") == (None, 30000)

    def test_npr_suffix(self):
        assert extract_budget("I can pay 25,000 NPR a month") == (None, 25000)

    def test_range(self):
        assert extract_budget("my budget is 20000-35000") == (20000, 35000)

    def test_between(self):
        assert extract_budget("between 40000 and 30000 rupees") == (30000, 40000)

    def test_lakh_multiplier(self):
        assert extract_budget("afford 50 lakh") == (None, 5_000_000)

    def test_small_amounts_ignored(self):
        assert extract_budget("under 500") == (None, None)

    def test_no_budget(self):
        assert extract_budget("quiet neighborhood please") == (None, None)


class TestExtractBedrooms:
    def test_bhk(self):
        assert extract_bedrooms("a 3BHK flat") == 3

    def test_spelled(self):
        assert extract_bedrooms("two bedroom house") == 2

    def test_none(self):
        assert extract_bedrooms("a nice flat") is None


class TestExtractLocations:
    def test_gazetteer_names_and_aliases(self):
        assert extract_locations("between patan and ktm") == ["Kathmandu", "Lalitpur"]

    def test_multi_word_name(self):
        assert extract_locations("shop near new road") == ["New Road"]

    def test_unknown_place(self):
        assert extract_locations("somewhere quiet") == []


class TestExtractPropertyTypes:
    def test_synonyms_are_canonicalized(self):
        assert extract_property_types("a flat or a villa") == ["apartment", "house"]

    def test_attached_bhk(self):
        assert extract_property_types("2bhk") == ["apartment"]

    def test_whole_words_only(self):
        assert extract_property_types("landmark warehouse") == []


class TestExtractAmenities:
    def test_family_keyword(self):
        assert extract_amenities("we have two kids") == ["family-friendly"]

    def test_no_keyword(self):
        assert extract_amenities("just me") == []


class TestExtractPreferences:
    def test_full_message(self):
        extracted = extract_preferences("Looking for a 2BHK apartment in Kathmandu under NPR 30,000 for my family")
        assert extracted.max_price == 30000
        assert extracted.bedrooms == 2
        assert extracted.locations == ["Kathmandu"]
        assert extracted.property_types == ["apartment"]
        assert extracted.amenities == ["family-friendly"]

    def test_empty(self):
        assert extract_preferences("hello").is_empty()


class TestMergePreferences:
    def test_arrays_are_unioned_in_order(self):
        current = _preferences(locations=["Lalitpur"], property_type=["house"])
        extracted = ExtractedPreferences(locations=["Kathmandu", "Lalitpur"], property_types=["apartment"])

        updates = merge_preferences(current, extracted)

        assert updates["locations"] == ["Lalitpur", "Kathmandu"]
        assert updates["property_type"] == ["house", "apartment"]

    def test_budget_keeps_existing_min(self):
        current = _preferences(price_range=PriceRange(min=10000, max=20000))
        updates = merge_preferences(current, ExtractedPreferences(max_price=30000))
        assert updates["price_range"] == PriceRange(min=10000, max=30000)

    def test_unchanged_fields_are_omitted(self):
        current = _preferences(bedrooms=2, locations=["Kathmandu"])
        extracted = ExtractedPreferences(bedrooms=2, locations=["Kathmandu"])
        assert merge_preferences(current, extracted) == {}

    def test_never_removes_known_values(self):
        current = _preferences(amenities=["family-friendly"])
        assert merge_preferences(current, ExtractedPreferences(bedrooms=3)) == {"bedrooms": 3}
