from fastapi import HTTPException, status
from loguru import logger

from app.services.errors import (
    InteractionStoreError,
    PostNotFoundError,
    CommentNotFoundError,
    InvalidCommentError,
    CommentPermissionError,
)

STATUS_BY_ERROR = {
    PostNotFoundError: status.HTTP_404_NOT_FOUND,
    CommentNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidCommentError: status.HTTP_400_BAD_REQUEST,
    CommentPermissionError: status.HTTP_403_FORBIDDEN,
}


def to_http_exception(e: Exception, action: str) -> HTTPException:
    """Map a store failure onto the status code the client should see."""
    if isinstance(e, InteractionStoreError):
        code = STATUS_BY_ERROR.get(type(e), status.HTTP_400_BAD_REQUEST)
        logger.warning(f"Rejected {action}: {e}")
        return HTTPException(status_code=code, detail=str(e))

    if isinstance(e, ValueError):
        logger.warning(f"Rejected {action}: {e}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.error(f"Error {action}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}: {str(e)}"
    )
