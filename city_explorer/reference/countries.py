"""Static country name <-> ISO 3166-1 alpha-2 lookup."""

from types import MappingProxyType

from city_explorer.logging_config import logger

COUNTRY_TO_CODE = MappingProxyType(
    {
        "Argentina": "AR",
        "Australia": "AU",
        "Austria": "AT",
        "Belgium": "BE",
        "Brazil": "BR",
        "Canada": "CA",
        "Chile": "CL",
        "China": "CN",
        "Colombia": "CO",
        "Czech Republic": "CZ",
        "Denmark": "DK",
        "Egypt": "EG",
        "Finland": "FI",
        "France": "FR",
        "Germany": "DE",
        "Greece": "GR",
        "India": "IN",
        "Indonesia": "ID",
        "Ireland": "IE",
        "Israel": "IL",
        "Italy": "IT",
        "Japan": "JP",
        "Kenya": "KE",
        "Mexico": "MX",
        "Netherlands": "NL",
        "New Zealand": "NZ",
        "Nigeria": "NG",
        "Norway": "NO",
        "Pakistan": "PK",
        "Peru": "PE",
        "Philippines": "PH",
        "Poland": "PL",
        "Portugal": "PT",
        "Russia": "RU",
        "Saudi Arabia": "SA",
        "South Africa": "ZA",
        "South Korea": "KR",
        "Spain": "ES",
        "Sweden": "SE",
        "Switzerland": "CH",
        "Thailand": "TH",
        "Turkey": "TR",
        "Ukraine": "UA",
        "United Kingdom": "GB",
        "United States": "US",
        "Vietnam": "VN",
    }
)

CODE_TO_COUNTRY = MappingProxyType({code: name for name, code in COUNTRY_TO_CODE.items()})

COUNTRIES = tuple(sorted(COUNTRY_TO_CODE))


def country_code_for(name: str) -> str | None:
    """Return the code for a display name, or None if the table lacks it."""
    code = COUNTRY_TO_CODE.get(name)
    if code is None:
        logger.warning("COUNTRY_CODE_MISSING", country=name)
    return code


def country_name_for(code: str) -> str | None:
    return CODE_TO_COUNTRY.get((code or "").upper())
