import asyncio
from typing import Any, Dict, List, Optional

from bizdata.core import schemas
from bizdata.core.protocol.dispatcher import ProtocolDispatcher
from bizdata.core.protocol.errors import ErrorCode, ProtocolCallError


class ProtocolClient:
    """
    Calls the dispatcher and hands back plain results.

    Error envelopes become ProtocolCallError; callers never see the envelope.
    """

    def __init__(self, dispatcher: ProtocolDispatcher, timeout: Optional[float] = 10.0):
        self.dispatcher = dispatcher
        self.timeout = timeout

    async def _request(self, method: str, params: Dict[str, Any]) -> Any:
        try:
            envelope = await asyncio.wait_for(
                self.dispatcher.handle(method, params), self.timeout
            )
        except asyncio.TimeoutError:
            raise ProtocolCallError(
                int(ErrorCode.INTERNAL_ERROR),
                f"Request timed out after {self.timeout}s: {method}",
            )

        if isinstance(envelope, schemas.ErrorEnvelope):
            raise ProtocolCallError(envelope.error.code, envelope.error.message)
        return envelope.result

    async def invoke_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("tools/call", {"name": name, "arguments": arguments or {}})

    async def read_resource(self, uri: str) -> Any:
        return await self._request("resources/read", {"uri": uri})

    async def list_tools(self) -> List[schemas.ToolDescriptor]:
        result = await self._request("tools/list", {})
        return [schemas.ToolDescriptor.model_validate(tool) for tool in result["tools"]]

    async def list_resources(self) -> List[schemas.ResourceDescriptor]:
        result = await self._request("resources/list", {})
        return [
            schemas.ResourceDescriptor.model_validate(resource)
            for resource in result["resources"]
        ]
