"""
Test Data Factories for the conversion reports

Usage:
    from tests.fixtures.factories import ConversionRecordFactory, CX3AdsRowFactory

    record = ConversionRecordFactory.build(price=12.5)
    rows = CX3AdsRowFactory.build_batch(10)
"""

from .conversion_factory import (
    ConversionRecordFactory,
    CX3AdsRowFactory,
    EverflowConversionFactory,
)

__all__ = [
    'ConversionRecordFactory',
    'CX3AdsRowFactory',
    'EverflowConversionFactory',
]
