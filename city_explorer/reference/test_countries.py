import pytest

from city_explorer.reference.countries import (
    COUNTRIES,
    COUNTRY_TO_CODE,
    country_code_for,
    country_name_for,
)


def test_name_and_code_round_trip():
    assert country_code_for("France") == "FR"
    assert country_name_for("fr") == "France"


def test_unknown_name_returns_none():
    assert country_code_for("Atlantis") is None


def test_unknown_code_has_no_name():
    assert country_name_for("XX") is None
    assert country_name_for(None) is None


def test_table_is_read_only():
    with pytest.raises(TypeError):
        COUNTRY_TO_CODE["Atlantis"] = "AT"


def test_countries_sorted():
    assert list(COUNTRIES) == sorted(COUNTRIES)
