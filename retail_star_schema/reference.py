"""Static reference tables bundled with the pipeline."""

from __future__ import annotations

import pandas as pd

COUNTRY_REFERENCE_COLUMNS = ["country", "region", "continent"]

#: Country -> region -> continent for every country in the Online Retail export.
DEFAULT_COUNTRY_REFERENCE: list[tuple[str, str, str]] = [
    ("Australia", "Australia and New Zealand", "Oceania"),
    ("Austria", "Western Europe", "Europe"),
    ("Bahrain", "Western Asia", "Asia"),
    ("Belgium", "Western Europe", "Europe"),
    ("Brazil", "South America", "South America"),
    ("Canada", "Northern America", "North America"),
    ("Channel Islands", "Northern Europe", "Europe"),
    ("Cyprus", "Western Asia", "Asia"),
    ("Czech Republic", "Eastern Europe", "Europe"),
    ("Denmark", "Northern Europe", "Europe"),
    ("EIRE", "Northern Europe", "Europe"),
    ("European Community", "Western Europe", "Europe"),
    ("Finland", "Northern Europe", "Europe"),
    ("France", "Western Europe", "Europe"),
    ("Germany", "Western Europe", "Europe"),
    ("Greece", "Southern Europe", "Europe"),
    ("Hong Kong", "Eastern Asia", "Asia"),
    ("Iceland", "Northern Europe", "Europe"),
    ("Israel", "Western Asia", "Asia"),
    ("Italy", "Southern Europe", "Europe"),
    ("Japan", "Eastern Asia", "Asia"),
    ("Lebanon", "Western Asia", "Asia"),
    ("Lithuania", "Northern Europe", "Europe"),
    ("Malta", "Southern Europe", "Europe"),
    ("Netherlands", "Western Europe", "Europe"),
    ("Norway", "Northern Europe", "Europe"),
    ("Poland", "Eastern Europe", "Europe"),
    ("Portugal", "Southern Europe", "Europe"),
    ("RSA", "Southern Africa", "Africa"),
    ("Saudi Arabia", "Western Asia", "Asia"),
    ("Singapore", "South-Eastern Asia", "Asia"),
    ("Spain", "Southern Europe", "Europe"),
    ("Sweden", "Northern Europe", "Europe"),
    ("Switzerland", "Western Europe", "Europe"),
    ("USA", "Northern America", "North America"),
    ("United Arab Emirates", "Western Asia", "Asia"),
    ("United Kingdom", "Northern Europe", "Europe"),
    ("Unspecified", "Unknown", "Unknown"),
]


def default_country_reference() -> pd.DataFrame:
    """Return the bundled country reference as a DataFrame."""
    return pd.DataFrame(DEFAULT_COUNTRY_REFERENCE, columns=COUNTRY_REFERENCE_COLUMNS)
