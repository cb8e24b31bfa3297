"""
Climapp Backend: Client Service
================================

What:  CRUD for a technician's clients, scoped by the technician's uid.
How:   Stateless; every method receives the request's AsyncSession (the
       session dependency commits or rolls back). SQLAlchemy errors are
       wrapped in DatabaseError so no SQL reaches the client.
Who:   routes/clients.py; AtendimentoService for address enrichment.

Client codes:
    Cli-001, Cli-002, ... per user. The next code is the highest existing
    number + 1, so deleting Cli-002 out of three does not reissue Cli-003.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from climapp.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from climapp.models.client import Client
from climapp.schemas.client import CLIENT_TEXT_FIELDS, ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)

CLIENT_CODE_PREFIX = "Cli"
CLIENT_CODE_WIDTH = 3


def next_sequential_code(existing: Iterable[str], prefix: str, width: int) -> str:
    """
    Highest `<prefix>-<n>` in `existing` plus one, zero-padded to `width`.

        next_sequential_code(["Cli-001", "Cli-007"], "Cli", 3) → "Cli-008"
        next_sequential_code([], "Atend", 2)                    → "Atend-01"

    Codes that do not match the pattern are ignored.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    for code in existing:
        match = pattern.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{highest + 1:0{width}d}"


class ClientService:
    """Business logic for /clientes."""

    async def create_client(self, db: AsyncSession, payload: ClientCreate) -> Client:
        values = payload.model_dump(include=set(CLIENT_TEXT_FIELDS))
        try:
            existing = await db.scalars(
                select(Client.codigo).where(Client.user_uid == payload.uid)
            )
            codigo = next_sequential_code(existing, CLIENT_CODE_PREFIX, CLIENT_CODE_WIDTH)

            client = Client(
                user_uid=payload.uid,
                codigo=codigo,
                **{field: value or "" for field, value in values.items()},
            )
            db.add(client)
            await db.flush()
        except IntegrityError as e:
            # Two concurrent creates computed the same code
            raise ConflictError(
                message="Código de cliente em uso. Tente novamente.",
                code="CLIENT_CODE_CONFLICT",
                context={"uid": payload.uid, "error": str(e.orig)},
            ) from e
        except SQLAlchemyError as e:
            logger.error("Failed to create client: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Erro ao cadastrar cliente.",
                context={"uid": payload.uid},
            ) from e

        logger.info("Client created: uid=%s codigo=%s", payload.uid, codigo)
        return client

    async def list_clients(self, db: AsyncSession, uid: str) -> List[Client]:
        """Clients in creation order (oldest first)."""
        try:
            result = await db.scalars(
                select(Client)
                .where(Client.user_uid == uid)
                .order_by(Client.created_at.asc(), Client.id.asc())
            )
            return list(result)
        except SQLAlchemyError as e:
            logger.error("Failed to list clients: %s", str(e), exc_info=True)
            raise DatabaseError(message="Erro ao buscar clientes.", context={"uid": uid}) from e

    async def get_client(self, db: AsyncSession, uid: str, codigo: str) -> Client:
        try:
            client = await db.scalar(
                select(Client).where(Client.user_uid == uid, Client.codigo == codigo)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to fetch client %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro ao buscar cliente.") from e

        if client is None:
            raise NotFoundError(
                resource="Cliente",
                resource_id=codigo,
                message=f"Cliente com código '{codigo}' não encontrado para este usuário.",
            )
        return client

    async def update_client(
        self, db: AsyncSession, uid: str, codigo: str, payload: ClientUpdate
    ) -> Tuple[Client, List[str]]:
        """
        Partial update of the fields present in the body.

        The code and creation time never change.

        Returns:
            (updated client, names of the fields written)
        """
        changes = payload.model_dump(exclude_unset=True, include=set(CLIENT_TEXT_FIELDS))
        if not changes:
            raise ValidationError(
                message="Nenhum dado fornecido para atualização.",
                code="EMPTY_UPDATE",
            )

        client = await self.get_client(db, uid, codigo)
        for field, value in changes.items():
            setattr(client, field, value or "")
        client.updated_at = datetime.now(timezone.utc)

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to update client %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro interno ao atualizar cliente.") from e

        fields = list(changes)
        logger.info("Client updated: uid=%s codigo=%s fields=%s", uid, codigo, fields)
        return client, fields

    async def delete_client(self, db: AsyncSession, uid: str, codigo: str) -> Client:
        """Delete and return the removed row (for the response summary)."""
        client = await self.get_client(db, uid, codigo)
        try:
            await db.delete(client)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete client %s: %s", codigo, str(e), exc_info=True)
            raise DatabaseError(message="Erro interno ao excluir cliente.") from e

        logger.info("Client deleted: uid=%s codigo=%s", uid, codigo)
        return client


client_service = ClientService()
