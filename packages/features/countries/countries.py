from __future__ import annotations

from typing import Optional

FLAG_URL = "https://flagcdn.com/w40/{code}.png"
GLOBE = "\U0001F310"

# Keys are matched after lower-casing and dropping spaces/punctuation.
_COUNTRY_TO_ISO = {
    # Middle East and Asia
    "afghanistan": "AF", "armenia": "AM", "azerbaijan": "AZ", "bahrain": "BH",
    "bangladesh": "BD", "bhutan": "BT", "brunei": "BN", "cambodia": "KH",
    "china": "CN", "cyprus": "CY", "georgia": "GE", "india": "IN",
    "indonesia": "ID", "iran": "IR", "iraq": "IQ", "israel": "IL",
    "japan": "JP", "jordan": "JO", "kazakhstan": "KZ", "kuwait": "KW",
    "kyrgyzstan": "KG", "laos": "LA", "lebanon": "LB", "malaysia": "MY",
    "maldives": "MV", "mongolia": "MN", "myanmar": "MM", "nepal": "NP",
    "northkorea": "KP", "oman": "OM", "pakistan": "PK", "palestine": "PS",
    "philippines": "PH", "qatar": "QA", "saudi": "SA", "saudiarabia": "SA",
    "ksa": "SA", "singapore": "SG", "southkorea": "KR", "korea": "KR",
    "srilanka": "LK", "syria": "SY", "taiwan": "TW", "tajikistan": "TJ",
    "thailand": "TH", "timorleste": "TL", "turkey": "TR", "turkiye": "TR",
    "turkmenistan": "TM", "uae": "AE", "unitedarabemirates": "AE", "dubai": "AE",
    "uzbekistan": "UZ", "vietnam": "VN", "yemen": "YE",
    # Europe
    "albania": "AL", "andorra": "AD", "austria": "AT", "belarus": "BY",
    "belgium": "BE", "bosniaandherzegovina": "BA", "bulgaria": "BG", "croatia": "HR",
    "czechia": "CZ", "czechrepublic": "CZ", "denmark": "DK", "estonia": "EE",
    "finland": "FI", "france": "FR", "germany": "DE", "greece": "GR",
    "hungary": "HU", "iceland": "IS", "ireland": "IE", "italy": "IT",
    "kosovo": "XK", "latvia": "LV", "liechtenstein": "LI", "lithuania": "LT",
    "luxembourg": "LU", "malta": "MT", "moldova": "MD", "monaco": "MC",
    "montenegro": "ME", "netherlands": "NL", "northmacedonia": "MK", "norway": "NO",
    "poland": "PL", "portugal": "PT", "romania": "RO", "russia": "RU",
    "sanmarino": "SM", "serbia": "RS", "slovakia": "SK", "slovenia": "SI",
    "spain": "ES", "sweden": "SE", "switzerland": "CH", "ukraine": "UA",
    "uk": "GB", "unitedkingdom": "GB", "england": "GB", "britain": "GB",
    "vaticancity": "VA", "schengen": "EU",
    # Americas, Africa and Oceania
    "usa": "US", "us": "US", "unitedstates": "US", "america": "US",
    "canada": "CA", "mexico": "MX", "brazil": "BR", "argentina": "AR",
    "chile": "CL", "colombia": "CO", "peru": "PE", "egypt": "EG",
    "nigeria": "NG", "kenya": "KE", "southafrica": "ZA", "morocco": "MA",
    "australia": "AU", "newzealand": "NZ",
}


def _key(country: str) -> str:
    return "".join(ch for ch in (country or "").lower() if ch.isalnum())


def country_iso(country: Optional[str]) -> str:
    """ISO-3166 alpha-2 code for a country name, or "" when unknown."""
    if not country:
        return ""
    return _COUNTRY_TO_ISO.get(_key(country), "")


def flag_emoji(iso: Optional[str]) -> str:
    iso = (iso or "").strip().upper()
    if len(iso) != 2 or not iso.isalpha():
        return GLOBE
    return "".join(chr(127397 + ord(ch)) for ch in iso)


def country_flag(country: Optional[str]) -> str:
    return flag_emoji(country_iso(country))


def flag_url(country: Optional[str]) -> str:
    """flagcdn image URL; unknown names fall back to their first two letters."""
    code = country_iso(country).lower()
    if not code:
        code = _key(country or "")[:2]
    return FLAG_URL.format(code=code) if code else ""
