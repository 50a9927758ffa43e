"""
Response validation and serialization.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from .exceptions import ResponseValidationError
from .models import JSONResponse, Response
from .normalizer import ResponseSpec
from .schema import Failure, dump, jsonable, validate

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class ResponseValidator:
    """Turns a handler's return value into a ``Response``.

    * A ``Response`` is sent as is.
    * A ``JSONResponse`` (or the plain value, meaning status 200) is checked
      against the route's ``application/json`` schema for that status; the
      decoded output is what gets serialized, so schema defaults show up on
      the wire.
    * With no schema declared for the status the value is serialized as is.
    """

    def render(self, responses: Mapping[int, ResponseSpec], result: Any) -> Response:
        if isinstance(result, Response):
            return result

        headers: Optional[Dict[str, str]] = None
        if isinstance(result, JSONResponse):
            status_code, value, headers = result.status_code, result.content, result.headers
        else:
            status_code, value = 200, result

        if status_code in (204, 304):
            return Response(status_code, headers=dict(headers or {}))

        spec = responses.get(status_code)
        media = spec.json_media if spec is not None else None
        if media is None:
            payload = jsonable(value)
        else:
            outcome = validate(media.schema, value)
            if isinstance(outcome, Failure):
                raise ResponseValidationError(status_code, outcome.issues)
            payload = dump(media.schema, outcome.data)

        return Response(
            status_code,
            json.dumps(payload),
            dict(headers or {}),
            content_type=JSON_CONTENT_TYPE,
        )
