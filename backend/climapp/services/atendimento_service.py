"""
Climapp Backend: Atendimento (Service Ticket) Service
======================================================

What:  CRUD for service tickets plus saving the orçamento (estimate).
How:   Stateless, session passed per call, like ClientService.
Who:   routes/atendimentos.py.

Status rules:
    - Create: empty or unknown Status is normalised to Diagnóstico.
    - Update: an unknown Status is rejected with 400 INVALID_STATUS.
    - Saving an orçamento moves the ticket to Aguardando.

Ticket codes: Atend-01, Atend-02, ... per user (highest existing + 1).
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from climapp.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from climapp.models.atendimento import (
    STATUS_AWAITING,
    STATUS_DEFAULT,
    VALID_STATUSES,
    Atendimento,
)
from climapp.models.client import Client
from climapp.schemas.atendimento import AtendimentoCreate, AtendimentoUpdate, OrcamentoRequest
from climapp.services.client_service import next_sequential_code

logger = logging.getLogger(__name__)

ATENDIMENTO_CODE_PREFIX = "Atend"
ATENDIMENTO_CODE_WIDTH = 2

# Request field name → column
FIELD_COLUMNS: Dict[str, str] = {
    "produto": "produto",
    "clienteCodigo": "cliente_codigo",
    "clienteNome": "cliente_nome",
    "data": "data",
    "descricaoDefeito": "descricao_defeito",
    "foto": "foto",
    "hora": "hora",
    "modelo": "modelo",
    "valorVisita": "valor_visita",
    "status": "status",
}

# Columns that stay NULL rather than "" when absent
NULLABLE_COLUMNS = frozenset({"foto"})


def normalize_status(status: Optional[str]) -> str:
    """Empty or unknown → Diagnóstico; a valid stage is returned unchanged."""
    if status is None or not status.strip():
        return STATUS_DEFAULT
    if status in VALID_STATUSES:
        return status
    logger.warning("Unknown status %r on create, using %s", status, STATUS_DEFAULT)
    return STATUS_DEFAULT


def _column_value(column: str, value: Optional[str]) -> Optional[str]:
    if column in NULLABLE_COLUMNS:
        return value or None
    return value or ""


class AtendimentoService:
    """Business logic for /atendimentos."""

    async def create_atendimento(
        self, db: AsyncSession, payload: AtendimentoCreate
    ) -> Atendimento:
        values = {
            FIELD_COLUMNS[field]: value
            for field, value in payload.model_dump(exclude={"uid", "status"}).items()
        }
        try:
            existing = await db.scalars(
                select(Atendimento.codigo).where(Atendimento.user_uid == payload.uid)
            )
            codigo = next_sequential_code(
                existing, ATENDIMENTO_CODE_PREFIX, ATENDIMENTO_CODE_WIDTH
            )
            atendimento = Atendimento(
                user_uid=payload.uid,
                codigo=codigo,
                status=normalize_status(payload.status),
                **{column: _column_value(column, value) for column, value in values.items()},
            )
            db.add(atendimento)
            await db.flush()
        except IntegrityError as e:
            raise ConflictError(
                message="Código de atendimento em uso. Tente novamente.",
                code="ATENDIMENTO_CODE_CONFLICT",
                context={"uid": payload.uid, "error": str(e.orig)},
            ) from e
        except SQLAlchemyError as e:
            logger.error("Failed to create atendimento: %s", str(e), exc_info=True)
            raise DatabaseError(message="Erro ao iniciar atendimento.") from e

        logger.info(
            "Atendimento created: uid=%s codigo=%s status=%s",
            payload.uid,
            codigo,
            atendimento.status,
        )
        return atendimento

    async def list_atendimentos(
        self, db: AsyncSession, uid: str
    ) -> List[Tuple[Atendimento, Optional[Client]]]:
        """
        Tickets newest first, each paired with its linked client (or None).

        Clients are fetched in one query for the whole page.
        """
        try:
            atendimentos = list(
                await db.scalars(
                    select(Atendimento)
                    .where(Atendimento.user_uid == uid)
                    .order_by(Atendimento.created_at.desc(), Atendimento.id.desc())
                )
            )
            client_codes = {a.cliente_codigo for a in atendimentos if a.cliente_codigo}
            clients: Dict[str, Client] = {}
            if client_codes:
                rows = await db.scalars(
                    select(Client).where(
                        Client.user_uid == uid, Client.codigo.in_(client_codes)
                    )
                )
                clients = {client.codigo: client for client in rows}
        except SQLAlchemyError as e:
            logger.error("Failed to list atendimentos: %s", str(e), exc_info=True)
            raise DatabaseError(message="Erro ao buscar atendimentos.") from e

        return [(a, clients.get(a.cliente_codigo)) for a in atendimentos]

    async def get_atendimento(
        self, db: AsyncSession, uid: str, codigo: str, error_code: Optional[str] = None
    ) -> Atendimento:
        try:
            atendimento = await db.scalar(
                select(Atendimento).where(
                    Atendimento.user_uid == uid, Atendimento.codigo == codigo
                )
            )
        except SQLAlchemyError as e:
            logger.error("Failed to fetch atendimento %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro ao buscar atendimento.") from e

        if atendimento is None:
            raise NotFoundError(
                resource="Atendimento",
                resource_id=codigo,
                message=f"Atendimento '{codigo}' não encontrado.",
                code=error_code,
            )
        return atendimento

    async def update_atendimento(
        self, db: AsyncSession, uid: str, codigo: str, payload: AtendimentoUpdate
    ) -> Atendimento:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError(
                message="Nenhum dado fornecido para atualização.",
                code="EMPTY_UPDATE",
            )
        if "status" in changes and changes["status"] not in VALID_STATUSES:
            raise ValidationError(
                message=f"Status inválido. Use: {', '.join(VALID_STATUSES)}",
                code="INVALID_STATUS",
                field="Status",
                details={"valid_statuses": list(VALID_STATUSES)},
            )

        atendimento = await self.get_atendimento(db, uid, codigo)
        for field, value in changes.items():
            column = FIELD_COLUMNS[field]
            setattr(atendimento, column, _column_value(column, value))
        atendimento.updated_at = datetime.now(timezone.utc)

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to update atendimento %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro ao atualizar atendimento.") from e

        logger.info("Atendimento updated: uid=%s codigo=%s fields=%s", uid, codigo, list(changes))
        return atendimento

    async def delete_atendimento(self, db: AsyncSession, uid: str, codigo: str) -> Atendimento:
        atendimento = await self.get_atendimento(db, uid, codigo)
        try:
            await db.delete(atendimento)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete atendimento %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro ao excluir atendimento.") from e

        logger.info("Atendimento deleted: uid=%s codigo=%s", uid, codigo)
        return atendimento

    async def save_orcamento(
        self, db: AsyncSession, codigo: str, payload: OrcamentoRequest
    ) -> Atendimento:
        """
        Store the estimate on the ticket and move it to Aguardando.

        Raises:
            ValidationError: userId missing (400 MISSING_USER_ID)
            NotFoundError: no such ticket for that user (404 ATENDIMENTO_NOT_FOUND)
        """
        if not payload.userId:
            raise ValidationError(
                message="userId é obrigatório",
                code="MISSING_USER_ID",
                field="userId",
            )

        atendimento = await self.get_atendimento(
            db, payload.userId, codigo, error_code="ATENDIMENTO_NOT_FOUND"
        )

        now = datetime.now(timezone.utc)
        orcamento = payload.model_dump(exclude={"userId"})
        orcamento["timestamp"] = payload.timestamp or now.isoformat()
        orcamento["updatedAt"] = now.isoformat()

        atendimento.orcamento = orcamento
        atendimento.status = STATUS_AWAITING
        atendimento.updated_at = now

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save orcamento for %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro ao salvar orçamento.") from e

        logger.info(
            "Orcamento saved: uid=%s codigo=%s materiais=%d servicos=%d",
            payload.userId,
            codigo,
            len(payload.materiais),
            len(payload.servicos),
        )
        return atendimento


atendimento_service = AtendimentoService()
