"""
Reports Module

Consultas de solo lectura sobre las tablas del ledger. No crea tablas.

- routers/ -> endpoints FastAPI
- services/ -> consultas y reglas de agregación
- schemas/ -> modelos Pydantic de filtros y respuestas
"""
