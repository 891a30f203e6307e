"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# Generic UUID: native on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Money columns: two decimal places, always returned as Decimal
MoneyType = Numeric(14, 2, asdecimal=True)

# Percentages such as 12.50
PercentType = Numeric(5, 2, asdecimal=True)

# Per-play values such as 0.10000000
RateType = Numeric(18, 8, asdecimal=True)
