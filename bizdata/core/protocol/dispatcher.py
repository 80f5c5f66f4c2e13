import json
import logging
from typing import Any

from pydantic import ValidationError

from bizdata.core import schemas
from bizdata.core.protocol.catalog import Catalog
from bizdata.core.protocol.errors import (
    ErrorCode,
    UnknownResourceError,
    UnknownToolError,
)
from bizdata.core.protocol.gateway import DataGateway


# -----------------------------------------------------------------------------
# DISPATCHER MODULE
# Purpose: one entry point for (method, params) -> envelope.
# Nothing below this boundary may escape as a raw exception: every failure
# becomes one of the three ErrorCode values.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


def error_envelope(code: ErrorCode, message: str) -> schemas.ErrorEnvelope:
    return schemas.ErrorEnvelope(error=schemas.ProtocolError(code=int(code), message=message))


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class ProtocolDispatcher:
    """Stateless between calls; safe to share across concurrent requests."""

    def __init__(self, catalog: Catalog, gateway: DataGateway):
        self.catalog = catalog
        self.gateway = gateway
        self._methods = {
            "resources/list": self._list_resources,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/read": self._read_resource,
        }

    async def handle(
        self, method: str, params: Any = None
    ) -> schemas.Envelope:
        handler = self._methods.get(method) if isinstance(method, str) else None
        if handler is None:
            return error_envelope(ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            request_params = schemas.ProtocolParams.model_validate(params or {})
        except ValidationError as error:
            return error_envelope(
                ErrorCode.INVALID_PARAMS,
                f"Invalid params: {_describe_validation_error(error)}",
            )

        try:
            return await handler(request_params)
        except Exception as error:
            logger.exception(f"Internal error while handling {method}")
            cause = str(error) or error.__class__.__name__
            return error_envelope(ErrorCode.INTERNAL_ERROR, f"Internal error: {cause}")

    async def handle_request(self, request: schemas.ProtocolRequest) -> schemas.Envelope:
        return await self.handle(request.method, request.params)

    async def _list_resources(self, params: schemas.ProtocolParams) -> schemas.Envelope:
        resources = [r.model_dump(by_alias=True) for r in self.catalog.resources()]
        return schemas.ResultEnvelope(result={"resources": resources})

    async def _list_tools(self, params: schemas.ProtocolParams) -> schemas.Envelope:
        tools = [t.model_dump(by_alias=True) for t in self.catalog.tools()]
        return schemas.ResultEnvelope(result={"tools": tools})

    async def _call_tool(self, params: schemas.ProtocolParams) -> schemas.Envelope:
        try:
            spec = self.catalog.tool(params.name)
            arguments = self.catalog.validate(spec.name, params.arguments)
        except UnknownToolError as error:
            return error_envelope(ErrorCode.INVALID_PARAMS, str(error))
        except ValidationError as error:
            return error_envelope(
                ErrorCode.INVALID_PARAMS,
                f"Invalid arguments for {spec.name}: {_describe_validation_error(error)}",
            )

        answer = await self.gateway.read(spec.entity, arguments)
        return schemas.ResultEnvelope(result=answer.model_dump(mode="json"))

    async def _read_resource(self, params: schemas.ProtocolParams) -> schemas.Envelope:
        try:
            resource = self.catalog.resource(params.uri)
        except UnknownResourceError as error:
            return error_envelope(ErrorCode.INVALID_PARAMS, str(error))

        spec = self.catalog.tool(resource.tool)
        arguments = self.catalog.validate(spec.name, resource.default_arguments)
        answer = await self.gateway.read(spec.entity, arguments)

        content = schemas.ResourceContent(
            uri=resource.uri,
            mime_type=resource.mime_type,
            text=json.dumps(answer.model_dump(mode="json"), indent=2, ensure_ascii=False),
        )
        return schemas.ResultEnvelope(result={"contents": [content.model_dump(by_alias=True)]})
