"""
Error helpers shared by the admin services
"""

from fastapi import HTTPException, status
from typing import Dict, List


def validation_error(errors: Dict[str, List[str]]) -> HTTPException:
    """Field-keyed 422, raised before any write happens"""
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"errors": errors}
    )


def field_error(field: str, message: str) -> HTTPException:
    return validation_error({field: [message]})


def not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")


def forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def server_error(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
