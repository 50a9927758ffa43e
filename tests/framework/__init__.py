"""
Test framework for API testing using 4-layer architecture.
"""

from .dsl import RestApiDsl, HttpRequest, HttpResponse
from .drivers import DirectDriver, AsgiDriver
from .multi_driver_base import MultiDriverTestBase, multi_driver_test_class

__all__ = [
    'RestApiDsl',
    'HttpRequest',
    'HttpResponse',
    'DirectDriver',
    'AsgiDriver',
    'MultiDriverTestBase',
    'multi_driver_test_class',
]
