"""
Errores HTTP compartidos por los servicios del ledger
"""
from typing import List, Dict
from fastapi import HTTPException, status


def field_error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def validation_error(errors: List[Dict[str, str]]) -> HTTPException:
    """400 con el detalle de cada campo inválido"""
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"errors": errors}
    )


def conflict_error(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)


def not_found_error(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def internal_error(message: str = "Error interno del servidor") -> HTTPException:
    # El detalle real solo va al log
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)
