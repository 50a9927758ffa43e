"""
OpenAPI 3.1 document generation.

The document is built from the same ``RouteDescriptor`` objects the request
pipeline uses, so what is published is exactly what is enforced.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

from .config import APIConfig
from .dependencies import derive_security
from .exceptions import RouteConfigurationError
from .normalizer import MediaTypeSpec, RequestBodySpec, ResponseSpec, merge_responses
from .registry import RouteDescriptor, RouteRegistry
from .router import param_name, split_path
from .schema import is_model, reflect

logger = logging.getLogger(__name__)

_COLON_PARAM = re.compile(r":([a-zA-Z_][a-zA-Z0-9_]*)")

_PARAMETER_LOCATIONS = (
    ("params", "path"),
    ("query", "query"),
    ("headers", "header"),
    ("cookies", "cookie"),
)


def convert_path(path: str) -> str:
    """Convert ``/users/:id`` style segments to ``/users/{id}``."""
    return _COLON_PARAM.sub(r"{\1}", path)


class DocumentGenerator:
    """Synthesizes the OpenAPI document for one registry.

    ``global_responses`` are overlaid by each route's own entries, per status.
    The result is cached until the registry changes.
    """

    def __init__(
        self,
        registry: RouteRegistry,
        config: APIConfig,
        global_responses: Optional[Mapping[int, ResponseSpec]] = None,
    ):
        self.registry = registry
        self.config = config
        self.global_responses = dict(global_responses or {})
        self._cached: Optional[Dict[str, Any]] = None
        self._cached_version = -1

    def generate(self) -> Dict[str, Any]:
        if self._cached is not None and self._cached_version == self.registry.version:
            return self._cached

        schemas: Dict[str, Any] = {}
        document: Dict[str, Any] = {
            "openapi": self.config.openapi_version,
            "info": self._info(),
        }
        if self.config.servers:
            document["servers"] = list(self.config.servers)
        if self.config.tags:
            document["tags"] = list(self.config.tags)

        paths: Dict[str, Dict[str, Any]] = {}
        for route in self.registry:
            path_item = paths.setdefault(convert_path(route.path), {})
            path_item[route.method.value.lower()] = self._operation(route, schemas)
        document["paths"] = paths

        components: Dict[str, Any] = {}
        if schemas:
            components["schemas"] = dict(sorted(schemas.items()))
        if self.config.security_schemes:
            components["securitySchemes"] = dict(self.config.security_schemes)
        if components:
            document["components"] = components
        if self.config.security:
            document["security"] = list(self.config.security)

        logger.debug(f"Generated OpenAPI document with {len(paths)} paths (registry version {self.registry.version})")
        self._cached = document
        self._cached_version = self.registry.version
        return document

    def _info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"title": self.config.title, "version": self.config.version}
        if self.config.description:
            info["description"] = self.config.description
        return info

    def _operation(self, route: RouteDescriptor, schemas: Dict[str, Any]) -> Dict[str, Any]:
        operation: Dict[str, Any] = {}
        if route.summary:
            operation["summary"] = route.summary
        if route.description:
            operation["description"] = route.description
        if route.tags:
            operation["tags"] = list(route.tags)
        if route.operation_id:
            operation["operationId"] = route.operation_id
        if route.deprecated:
            operation["deprecated"] = True

        parameters = self._parameters(route, schemas)
        if parameters:
            operation["parameters"] = parameters

        request_body = self._request_body(route, schemas)
        if request_body:
            operation["requestBody"] = request_body

        responses = merge_responses(self.global_responses, route.responses)
        operation["responses"] = {
            str(status): self._response(spec, schemas) for status, spec in sorted(responses.items())
        }

        security = route.security if route.security is not None else derive_security(route.dependencies)
        if security is not None:
            operation["security"] = security
        return operation

    def _schema(self, schema: Any, schemas: Dict[str, Any]) -> Dict[str, Any]:
        """Reflect a schema, publishing models as named components."""
        if is_model(schema):
            name = schema.__name__
            definition = reflect(schema, schemas)
            existing = schemas.setdefault(name, definition)
            if existing != definition:
                raise RouteConfigurationError(
                    f"Two different schemas are published as component '{name}'; rename one of the models"
                )
            return {"$ref": f"#/components/schemas/{name}"}
        return reflect(schema, schemas)

    def _parameters(self, route: RouteDescriptor, schemas: Dict[str, Any]) -> List[Dict[str, Any]]:
        parameters: List[Dict[str, Any]] = []
        for group, location in _PARAMETER_LOCATIONS:
            schema = getattr(route, group)
            if schema is None:
                continue
            object_schema = reflect(schema, schemas)
            required = set(object_schema.get("required", []))
            for name, property_schema in object_schema.get("properties", {}).items():
                parameters.append(self._parameter(name, location, name in required, dict(property_schema)))

        # Path templates must declare every parameter, typed or not.
        declared = {p["name"] for p in parameters if p["in"] == "path"}
        for segment in split_path(route.path):
            name = param_name(segment)
            if name is not None and name not in declared:
                parameters.append({"name": name, "in": "path", "required": True, "schema": {"type": "string"}})
        return parameters

    def _parameter(self, name: str, location: str, required: bool, property_schema: Dict[str, Any]) -> Dict[str, Any]:
        parameter: Dict[str, Any] = {
            "name": name,
            "in": location,
            "required": True if location == "path" else required,
        }
        if "description" in property_schema:
            parameter["description"] = property_schema.pop("description")
        if property_schema.pop("deprecated", False):
            parameter["deprecated"] = True
        if "example" in property_schema:
            parameter["example"] = property_schema.pop("example")
        parameter["schema"] = property_schema
        return parameter

    def _media(self, spec: MediaTypeSpec, schema: Dict[str, Any]) -> Dict[str, Any]:
        media_object: Dict[str, Any] = {"schema": schema}
        if spec.example is not None:
            media_object["example"] = spec.example
        if spec.examples:
            media_object["examples"] = dict(spec.examples)
        if spec.encoding:
            media_object["encoding"] = dict(spec.encoding)
        return media_object

    def _request_body(self, route: RouteDescriptor, schemas: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        group = route.payload_group
        if group is None:
            return None
        spec: RequestBodySpec = getattr(route, group)

        content: Dict[str, Any] = {}
        for media_type, media_spec in spec.content.items():
            schema = self._schema(media_spec.schema, schemas)
            if group in ("file", "files"):
                # A bare file is sent as a single multipart field of that name.
                schema = {"type": "object", "properties": {group: schema}}
                if spec.required:
                    schema["required"] = [group]
            content[media_type] = self._media(media_spec, schema)

        request_body: Dict[str, Any] = {"content": content, "required": spec.required}
        if spec.description:
            request_body["description"] = spec.description
        return request_body

    def _response(self, spec: ResponseSpec, schemas: Dict[str, Any]) -> Dict[str, Any]:
        response: Dict[str, Any] = {"description": spec.description or ""}
        if spec.headers:
            response["headers"] = dict(spec.headers)
        if spec.content:
            response["content"] = {
                media_type: self._media(media_spec, self._schema(media_spec.schema, schemas))
                for media_type, media_spec in spec.content.items()
            }
        if spec.links:
            response["links"] = dict(spec.links)
        return response


def write_document(document: Dict[str, Any], filename: str = "openapi.json", docs_dir: str = "docs", indent: int = 2) -> str:
    """Write a document as JSON into ``docs_dir`` and return the file path."""
    os.makedirs(docs_dir, exist_ok=True)
    file_path = os.path.join(docs_dir, filename)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=indent)
    return file_path
