"""
Application-wide configuration.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ValidationPolicy(Enum):
    """How request field groups are checked.

    COLLECT_ALL validates every declared group and reports all failures at
    once. FAIL_FAST stops at the first group that fails.
    """

    COLLECT_ALL = "collect_all"
    FAIL_FAST = "fail_fast"


@dataclass
class GlobalRequestParams:
    """Object schemas merged into the matching group of every route."""

    params: Optional[Type[BaseModel]] = None
    query: Optional[Type[BaseModel]] = None
    headers: Optional[Type[BaseModel]] = None
    cookies: Optional[Type[BaseModel]] = None


@dataclass
class APIConfig:
    """Document metadata plus runtime policy for one Application.

    Example:
        ```python
        config = APIConfig(
            title="Notes",
            version="2.0.0",
            security_schemes={"bearerAuth": {"type": "http", "scheme": "bearer"}},
        )
        app = Application(config)
        ```
    """

    title: str = "API"
    version: str = "1.0.0"
    description: Optional[str] = None
    servers: List[Dict[str, Any]] = field(default_factory=list)
    tags: List[Dict[str, Any]] = field(default_factory=list)
    security_schemes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    security: Optional[List[Dict[str, List[str]]]] = None
    global_responses: Dict[int, Any] = field(default_factory=dict)
    global_params: GlobalRequestParams = field(default_factory=GlobalRequestParams)
    validation_policy: ValidationPolicy = ValidationPolicy.COLLECT_ALL
    request_validation_status: int = 400
    openapi_version: str = "3.1.0"
    default_error_responses: bool = True

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ConfigurationError: If the configuration is inconsistent
        """
        if not self.title:
            raise ConfigurationError("API title must not be empty")
        if not self.version:
            raise ConfigurationError("API version must not be empty")
        if not 400 <= self.request_validation_status <= 499:
            raise ConfigurationError(
                f"request_validation_status must be a 4xx code, got {self.request_validation_status}"
            )
        for status in self.global_responses:
            if not 100 <= int(status) <= 599:
                raise ConfigurationError(f"Global response status out of range: {status}")
        for requirement in self.security or []:
            for scheme in requirement:
                if scheme not in self.security_schemes:
                    raise ConfigurationError(f"Global security references unknown scheme '{scheme}'")
        if not isinstance(self.validation_policy, ValidationPolicy):
            raise ConfigurationError(f"Unknown validation policy: {self.validation_policy!r}")

    @classmethod
    def from_env(cls, prefix: str = "ROUTESPEC_", **overrides: Any) -> "APIConfig":
        """Build a config from environment variables.

        Reads ``<prefix>TITLE``, ``VERSION``, ``DESCRIPTION``, ``FAIL_FAST`` and
        ``VALIDATION_STATUS``. Keyword arguments win over the environment.
        """
        values: Dict[str, Any] = {}
        if f"{prefix}TITLE" in os.environ:
            values["title"] = os.environ[f"{prefix}TITLE"]
        if f"{prefix}VERSION" in os.environ:
            values["version"] = os.environ[f"{prefix}VERSION"]
        if f"{prefix}DESCRIPTION" in os.environ:
            values["description"] = os.environ[f"{prefix}DESCRIPTION"]
        fail_fast = os.environ.get(f"{prefix}FAIL_FAST", "").lower()
        if fail_fast in ("1", "true", "yes"):
            values["validation_policy"] = ValidationPolicy.FAIL_FAST
        status = os.environ.get(f"{prefix}VALIDATION_STATUS")
        if status:
            try:
                values["request_validation_status"] = int(status)
            except ValueError:
                raise ConfigurationError(f"{prefix}VALIDATION_STATUS must be an integer, got {status!r}") from None

        values.update(overrides)
        logger.debug(f"Loaded API config from environment: {sorted(values)}")
        return cls(**values)
