"""
Database Schema Definitions.

The DDL itself lives in versioned scripts under sql/; this module pins the
version the code expects and names the tables those scripts create.
"""
from pathlib import Path

# Current schema version. Add a V<n>__<description>.sql script and bump this
# when the schema structure changes.
SCHEMA_VERSION = 1

SQL_DIR = Path(__file__).resolve().parent / "sql"

# Tables created by the shipped scripts, parents before children
TABLES = (
    "account",
    "flipping_item",
    "offer_event",
    "recipe_flip_group",
    "recipe_flip",
    "partial_offer",
    "last_offer",
    "account_wide_data",
)
