"""
Standard type definitions for database models.

Provides consistent types for monetary and ratio fields across all models.
"""

from sqlalchemy import DECIMAL, JSON
from sqlalchemy.dialects.postgresql import JSONB

# Standard money type for collected amounts, transfers and balances
# Precision: 18 digits total, 2 after decimal point
# Range: up to 9,999,999,999,999,999.99
MoneyType = DECIMAL(18, 2)

# Ratio type for percentages stored as fractions (0.60 = 60%)
# Precision: 9 digits total, 6 after decimal point
RatioType = DECIMAL(9, 6)

# Structured JSON documents (audit trail); JSONB on PostgreSQL
JSONType = JSON().with_variant(JSONB(), "postgresql")
