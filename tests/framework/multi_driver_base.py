"""
Multi-driver test base for automatic driver discovery and execution.

This module provides a base class that automatically runs tests against all available drivers.
Each test file should inherit from MultiDriverTestBase and define a single create_app() method.
"""

from abc import ABC, abstractmethod
from typing import List

import pytest

from routespec import Application
from .dsl import RestApiDsl
from .drivers import AsgiDriver, DirectDriver, DriverInterface


class MultiDriverTestBase(ABC):
    """
    Base class for multi-driver tests.

    Automatically runs each test method against all available drivers.
    Subclasses must implement create_app() to define the application under test.
    """

    # Override this in subclasses to control which drivers to test
    ENABLED_DRIVERS = [
        'direct',  # Direct driver: calls Application.execute
        'asgi',    # ASGI driver: drives ASGIAdapter in-process
    ]

    # Optional: Override to exclude specific drivers for certain test files
    EXCLUDED_DRIVERS: List[str] = []

    @abstractmethod
    def create_app(self) -> Application:
        """Create and configure the application for testing."""
        pass

    @classmethod
    def get_available_drivers(cls) -> List[str]:
        """Get list of available driver names for this test class."""
        return [driver for driver in cls.ENABLED_DRIVERS if driver not in cls.EXCLUDED_DRIVERS]

    @classmethod
    def create_driver(cls, driver_name: str, app: Application) -> DriverInterface:
        """Create a driver instance for the given driver name."""
        driver_map = {
            'direct': DirectDriver,
            'asgi': AsgiDriver,
        }
        if driver_name not in driver_map:
            pytest.skip(f"Driver '{driver_name}' not available. Available: {list(driver_map)}")
        return driver_map[driver_name](app)

    @pytest.fixture
    def api(self, request):
        """
        Parametrized fixture that provides an API client for each enabled driver.

        A fresh application is created per test so per-test state stays isolated.
        """
        driver_name = request.param
        app = self.create_app()
        yield RestApiDsl(self.create_driver(driver_name, app)), driver_name


def multi_driver_test_class(enabled_drivers: List[str] = None, excluded_drivers: List[str] = None):
    """
    Class decorator to configure multi-driver testing.

    Usage:
        @multi_driver_test_class(enabled_drivers=['direct'])
        class TestMyApi(MultiDriverTestBase):
            def create_app(self):
                return Application()
    """
    def decorator(cls):
        if enabled_drivers is not None:
            cls.ENABLED_DRIVERS = enabled_drivers
        if excluded_drivers is not None:
            cls.EXCLUDED_DRIVERS = excluded_drivers
        return cls
    return decorator
