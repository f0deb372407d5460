"""
Test utilities for fulfillment backends.

Components:
    FulfillmentStoreConformanceSuite: Contract tests every store backend
        subclass must pass

Note:
    This module is intended for test code only. It imports pytest and
    should not be imported in production code paths.
"""

from fulfillment.testing.conformance import FulfillmentStoreConformanceSuite

__all__ = ["FulfillmentStoreConformanceSuite"]
