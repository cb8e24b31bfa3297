"""
Climapp Backend: Client Route Handlers
=======================================

What:  CRUD for a technician's customers under /clientes.
How:   Thin handlers: parse → delegate to ClientService → shape the
       envelope. The session comes from get_db_session(), which commits on
       success and rolls back if the service raises.

Clients are scoped by the technician's uid. The human code (Cli-001,
Cli-002, ...) is assigned by the service and never changes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from climapp.database import get_db_session
from climapp.schemas.client import (
    ClientCreate,
    ClientCreatedResponse,
    ClientDeletedData,
    ClientDeletedResponse,
    ClientListResponse,
    ClientResponse,
    ClientUpdate,
    ClientUpdateData,
    ClientUpdatedResponse,
)
from climapp.schemas.common import ErrorResponse
from climapp.services.client_service import client_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clientes", tags=["Clientes"])

_NOT_FOUND = {404: {"description": "Client not found", "model": ErrorResponse}}


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ClientCreatedResponse,
    responses={409: {"description": "Code collision, retry", "model": ErrorResponse}},
    summary="Register a client",
)
async def create_client(
    payload: ClientCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ClientCreatedResponse:
    """Missing text fields are stored as empty strings."""
    client = await client_service.create_client(db, payload)
    return ClientCreatedResponse(
        codigo=client.codigo,
        data=ClientResponse.model_validate(client),
    )


@router.get(
    "/{uid}",
    response_model=ClientListResponse,
    summary="List a technician's clients (oldest first)",
)
async def list_clients(
    uid: str,
    db: AsyncSession = Depends(get_db_session),
) -> ClientListResponse:
    clients = await client_service.list_clients(db, uid)
    return ClientListResponse(
        count=len(clients),
        data=[ClientResponse.model_validate(client) for client in clients],
    )


@router.put(
    "/{uid}/{codigo}",
    response_model=ClientUpdatedResponse,
    responses={400: {"description": "Empty update", "model": ErrorResponse}, **_NOT_FOUND},
    summary="Update some of a client's fields",
)
async def update_client(
    uid: str,
    codigo: str,
    payload: ClientUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> ClientUpdatedResponse:
    client, fields = await client_service.update_client(db, uid, codigo, payload)
    current = ClientResponse.model_validate(client)
    return ClientUpdatedResponse(
        message=f"Cliente {codigo} atualizado com sucesso!",
        data=ClientUpdateData(**current.model_dump(), fieldsUpdated=fields),
    )


@router.delete(
    "/{uid}/{codigo}",
    response_model=ClientDeletedResponse,
    responses=_NOT_FOUND,
    summary="Delete a client",
)
async def delete_client(
    uid: str,
    codigo: str,
    db: AsyncSession = Depends(get_db_session),
) -> ClientDeletedResponse:
    client = await client_service.delete_client(db, uid, codigo)
    return ClientDeletedResponse(
        message=f"Cliente {codigo} excluído com sucesso!",
        data=ClientDeletedData(
            codigo=client.codigo,
            nome=client.nome,
            deletedAt=datetime.now(timezone.utc),
        ),
    )
