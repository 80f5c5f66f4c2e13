import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from bizdata.ai_feature.service import BusinessQueryService
from bizdata.core import schemas
from bizdata.core.services import get_query_service

router = APIRouter(prefix="/assistant", tags=["Assistant"])

service_dep = Annotated[BusinessQueryService, Depends(get_query_service)]


# Field names, not aliases, at every nesting level
@router.post("/query", response_model=schemas.QueryContext, response_model_by_alias=False)
async def process_query(payload: schemas.QueryRequest, service: service_dep):
    """
    Classify the question, collect the data it needs and return the context
    for narration. Partial failures are reported inside the context.
    """
    if not payload.query.strip():
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "Query is empty")

    try:
        return await service.process(payload.query)
    except Exception as error:
        logging.error(f"Failed to process query: {error}")
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process query"
        )
