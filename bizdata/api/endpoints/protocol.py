from typing import Annotated, List

from fastapi import APIRouter, Depends

from bizdata.core import schemas
from bizdata.core.protocol.dispatcher import ProtocolDispatcher
from bizdata.core.services import get_dispatcher

router = APIRouter(prefix="/mcp", tags=["Protocol"])

dispatcher_dep = Annotated[ProtocolDispatcher, Depends(get_dispatcher)]


@router.post("", response_model=schemas.Envelope)
async def handle_protocol_request(
    request: schemas.ProtocolRequest, dispatcher: dispatcher_dep
):
    """
    Single protocol entry point.
    Always HTTP 200: failures travel inside the envelope's `error`.
    """
    return await dispatcher.handle_request(request)


@router.get("/tools", response_model=List[schemas.ToolDescriptor])
async def list_tools(dispatcher: dispatcher_dep):
    return dispatcher.catalog.tools()


@router.get("/resources", response_model=List[schemas.ResourceDescriptor])
async def list_resources(dispatcher: dispatcher_dep):
    return dispatcher.catalog.resources()
