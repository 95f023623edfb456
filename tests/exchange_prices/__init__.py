"""
Tests for the Exchange Prices package.

This package contains tests for:
- Fixed-point price arithmetic
- Asset registry and symbol resolution
- Candle normalization and series reconciliation
- Consensus pricing
- Exchange adapters, transport and gateway routing
- Configuration
- Fetch orchestration
"""
