"""
Climapp Backend: Atendimento SQLAlchemy Model
==============================================

What:  ORM model for the `atendimentos` table (service tickets).
Who:   AtendimentoService for CRUD and estimate storage; Alembic.

Lifecycle (Status column):
    Diagnóstico → Aguardando → Aprovado | Recusado → Executado → Garantia

    New tickets start in Diagnóstico. Saving an orçamento (estimate) moves the
    ticket to Aguardando, waiting for the customer's answer.

Column names follow the mobile app's payload (Produto, Status, clienteCodigo...)
only at the schema layer; the table itself uses snake_case.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from climapp.database import Base
from climapp.models.client import utcnow


STATUS_DEFAULT = "Diagnóstico"
STATUS_AWAITING = "Aguardando"

# Ordered as the ticket moves through its stages
STATUS_DESCRIPTIONS: Dict[str, str] = {
    "Diagnóstico": "Atendimento em fase de diagnóstico inicial",
    "Aguardando": "Aguardando aprovação ou peças",
    "Aprovado": "Serviço aprovado pelo cliente",
    "Recusado": "Serviço recusado pelo cliente",
    "Executado": "Serviço executado e finalizado",
    "Garantia": "Atendimento em garantia",
}
VALID_STATUSES = tuple(STATUS_DESCRIPTIONS)


class Atendimento(Base):
    """A service ticket opened by a technician for one of their clients."""

    __tablename__ = "atendimentos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    codigo: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Human-facing code, Atend-NN, unique per user",
    )

    # ── Ticket data ───────────────────────────────────────────────────────
    produto: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Soft link to clientes.codigo (same user). Not a FK: deleting a client
    # keeps its ticket history.
    cliente_codigo: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    cliente_nome: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Date and time are kept as the app sends them (dd/mm/yyyy, HH:MM)
    data: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    hora: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    descricao_defeito: Mapped[str] = mapped_column(Text, nullable=False, default="")
    foto: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    modelo: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    valor_visita: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=STATUS_DEFAULT,
        comment="One of: " + ", ".join(VALID_STATUSES),
    )

    # ── Estimate ──────────────────────────────────────────────────────────
    orcamento: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
        default=None,
        comment="Saved estimate: materials, services, warranty, totals",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    __table_args__ = (
        UniqueConstraint("user_uid", "codigo", name="uq_atendimentos_user_codigo"),
        Index("idx_atendimentos_user_created", "user_uid", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Atendimento(user_uid='{self.user_uid}', codigo='{self.codigo}', "
            f"status='{self.status}')>"
        )
