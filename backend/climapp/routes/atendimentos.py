"""
Climapp Backend: Atendimento Route Handlers
============================================

What:  Service tickets (atendimentos) under /atendimentos, their status
       stages, and the orçamento (estimate) attached to a ticket.
How:   Thin handlers over AtendimentoService with a per-request session.

Route order matters: GET /estagios/lista is declared before GET /{uid} so
"estagios" is never taken for a uid.

The app writes `Produto` and `Status` with a capital letter; responses are
serialized by alias so it reads back the same keys.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from climapp.database import get_db_session
from climapp.models.atendimento import STATUS_DEFAULT, STATUS_DESCRIPTIONS, VALID_STATUSES
from climapp.schemas.atendimento import (
    AtendimentoCreate,
    AtendimentoCreatedResponse,
    AtendimentoDeletedData,
    AtendimentoDeletedResponse,
    AtendimentoDetailResponse,
    AtendimentoListItem,
    AtendimentoListResponse,
    AtendimentoResponse,
    AtendimentoUpdate,
    OrcamentoRequest,
    OrcamentoSavedData,
    OrcamentoSavedResponse,
    StagesData,
    StagesResponse,
)
from climapp.schemas.common import ErrorResponse
from climapp.services.atendimento_service import atendimento_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/atendimentos", tags=["Atendimentos"])

_NOT_FOUND = {404: {"description": "Atendimento not found", "model": ErrorResponse}}


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=AtendimentoCreatedResponse,
    response_model_by_alias=True,
    responses={409: {"description": "Code collision, retry", "model": ErrorResponse}},
    summary="Open a service ticket",
    description="An empty or unknown `Status` starts the ticket in Diagnóstico.",
)
async def create_atendimento(
    payload: AtendimentoCreate,
    db: AsyncSession = Depends(get_db_session),
) -> AtendimentoCreatedResponse:
    atendimento = await atendimento_service.create_atendimento(db, payload)
    return AtendimentoCreatedResponse(
        codigo=atendimento.codigo,
        data=AtendimentoResponse.model_validate(atendimento),
    )


@router.get(
    "/estagios/lista",
    response_model=StagesResponse,
    summary="Valid ticket stages",
)
async def list_stages() -> StagesResponse:
    return StagesResponse(
        data=StagesData(
            estagios=list(VALID_STATUSES),
            padrao=STATUS_DEFAULT,
            descricao=dict(STATUS_DESCRIPTIONS),
        )
    )


@router.get(
    "/{uid}",
    response_model=AtendimentoListResponse,
    summary="List a technician's tickets (newest first)",
    description="Each ticket carries the linked client's `rua` and `numero` when the client exists.",
)
async def list_atendimentos(
    uid: str,
    db: AsyncSession = Depends(get_db_session),
) -> AtendimentoListResponse:
    rows = await atendimento_service.list_atendimentos(db, uid)
    items = []
    for atendimento, client in rows:
        item = AtendimentoListItem.model_validate(atendimento)
        if client is not None:
            item = item.model_copy(update={"rua": client.rua, "numero": client.numero})
        items.append(item)
    return AtendimentoListResponse(count=len(items), data=items)


@router.get(
    "/{uid}/{codigo}",
    response_model=AtendimentoDetailResponse,
    responses=_NOT_FOUND,
    summary="Get one ticket",
)
async def get_atendimento(
    uid: str,
    codigo: str,
    db: AsyncSession = Depends(get_db_session),
) -> AtendimentoDetailResponse:
    atendimento = await atendimento_service.get_atendimento(db, uid, codigo)
    return AtendimentoDetailResponse(data=AtendimentoResponse.model_validate(atendimento))


@router.put(
    "/{uid}/{codigo}",
    response_model=AtendimentoDetailResponse,
    responses={
        400: {"description": "Empty update or invalid Status", "model": ErrorResponse},
        **_NOT_FOUND,
    },
    summary="Update some of a ticket's fields",
)
async def update_atendimento(
    uid: str,
    codigo: str,
    payload: AtendimentoUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> AtendimentoDetailResponse:
    atendimento = await atendimento_service.update_atendimento(db, uid, codigo, payload)
    return AtendimentoDetailResponse(
        message=f"Atendimento {codigo} atualizado com sucesso!",
        data=AtendimentoResponse.model_validate(atendimento),
    )


@router.delete(
    "/{uid}/{codigo}",
    response_model=AtendimentoDeletedResponse,
    responses=_NOT_FOUND,
    summary="Delete a ticket",
)
async def delete_atendimento(
    uid: str,
    codigo: str,
    db: AsyncSession = Depends(get_db_session),
) -> AtendimentoDeletedResponse:
    atendimento = await atendimento_service.delete_atendimento(db, uid, codigo)
    return AtendimentoDeletedResponse(
        message=f"Atendimento {codigo} excluído com sucesso!",
        data=AtendimentoDeletedData(
            codigo=atendimento.codigo,
            deletedAt=datetime.now(timezone.utc),
        ),
    )


@router.post(
    "/{codigo}/orcamento",
    response_model=OrcamentoSavedResponse,
    responses={
        400: {"description": "userId missing", "model": ErrorResponse},
        **_NOT_FOUND,
    },
    summary="Save the estimate for a ticket",
    description=(
        "Stores materials, services, warranty and totals on the ticket and moves "
        "it to Aguardando (waiting for the customer's approval)."
    ),
)
async def save_orcamento(
    codigo: str,
    payload: OrcamentoRequest,
    db: AsyncSession = Depends(get_db_session),
) -> OrcamentoSavedResponse:
    atendimento = await atendimento_service.save_orcamento(db, codigo, payload)
    return OrcamentoSavedResponse(
        data=OrcamentoSavedData(
            atendimentoId=atendimento.codigo,
            status=atendimento.status,
            orcamento=atendimento.orcamento,
        )
    )
