"""
Mainstream - Shared Responses
=============================
"""

from fastapi import status
from fastapi.responses import JSONResponse

from mainstream.core.schemas import MessageResponse


def already_done(message: str) -> JSONResponse:
    """
    A 200 message for idempotent creates whose success code is 201.

    Used when the like, follow or link being created already exists.
    """
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=MessageResponse(message=message).model_dump(),
    )
