"""
Request field validation.

Each declared field group is pulled out of the request, validated against its
schema and, on success, stored decoded on the ``RequestContext``. Failures are
collected per group into a ``ValidationErrors`` map.
"""

import logging
from typing import Any, Dict, List

from .config import ValidationPolicy
from .context import RequestContext
from .exceptions import ValidationErrors
from .models import Request
from .normalizer import RequestBodySpec
from .registry import FIELD_GROUPS, PAYLOAD_GROUPS
from .schema import Failure, Issue, ValidationOutcome, to_mapping, validate

logger = logging.getLogger(__name__)


def collapse_query(query_params: Dict[str, List[str]]) -> Dict[str, Any]:
    """A key given once becomes a scalar; a repeated key stays a list."""
    return {key: values[0] if len(values) == 1 else list(values) for key, values in query_params.items()}


def should_read_payload(spec: RequestBodySpec, request: Request) -> bool:
    """Read the body only when something was sent or the route insists on one."""
    return request.content_length > 0 or spec.required


class RequestValidator:
    """Validates the field groups a route declares."""

    def __init__(self, policy: ValidationPolicy = ValidationPolicy.COLLECT_ALL):
        self.policy = policy

    async def validate(self, ctx: RequestContext) -> ValidationErrors:
        """Validate every declared group and populate ``ctx``.

        Returns an empty map when the request is valid.
        """
        errors: ValidationErrors = {}
        for group in FIELD_GROUPS:
            declared = getattr(ctx.route, group)
            if declared is None:
                continue
            if group in PAYLOAD_GROUPS and not should_read_payload(declared, ctx.request):
                logger.debug(f"Skipping optional {group}: request carries no payload")
                continue

            outcome = await self._validate_group(group, declared, ctx.request)
            if isinstance(outcome, Failure):
                errors[group] = outcome.issues
                if self.policy is ValidationPolicy.FAIL_FAST:
                    break
                continue
            self._store(ctx, group, outcome.data)

        if errors:
            logger.warning(
                f"Request validation failed for {ctx.request.method.value} {ctx.request.path}: "
                f"{', '.join(f'{group} ({len(issues)})' for group, issues in errors.items())}"
            )
        return errors

    async def _validate_group(self, group: str, declared: Any, request: Request) -> ValidationOutcome:
        if group in PAYLOAD_GROUPS:
            schema = declared.schema
            try:
                value = await self._extract_payload(group, request)
            except ValueError as exc:
                return Failure([Issue(path=[], code="invalid_payload", message=str(exc), input=None)])
        else:
            schema = declared
            value = self._extract_fields(group, request)
        return validate(schema, value)

    def _extract_fields(self, group: str, request: Request) -> Dict[str, Any]:
        if group == "params":
            return dict(request.path_params)
        if group == "query":
            return collapse_query(request.query_params)
        if group == "headers":
            return request.headers.lowered()
        return request.cookies

    async def _extract_payload(self, group: str, request: Request) -> Any:
        if group == "body":
            return await request.json()
        if group == "form":
            return await request.form()
        uploads = await request.files()
        if group == "file":
            found = uploads.get("file")
            return found[0] if found else None
        return list(uploads.get("files") or uploads.get("files[]") or [])

    def _store(self, ctx: RequestContext, group: str, data: Any) -> None:
        if group == "headers":
            merged = dict(ctx.headers)
            merged.update(to_mapping(data))
            ctx.headers = merged
        else:
            setattr(ctx, group, data)
