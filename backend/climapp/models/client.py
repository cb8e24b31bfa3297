"""
Climapp Backend: Client SQLAlchemy Model
=========================================

What:  ORM model for the `clientes` table (a technician's customers).
Who:   ClientService for CRUD; AtendimentoService to enrich ticket listings
       with the customer's street address; Alembic.

Table Design:
    - Rows are scoped by `user_uid` (the identity provider's uid). Two
      technicians may both own a "Cli-001".
    - `codigo` is the human-facing code shown in the app (Cli-001, Cli-002...).
      Unique per user.
    - All text fields default to "" rather than NULL; the mobile app renders
      them directly.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from climapp.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """A customer registered by one technician."""

    __tablename__ = "clientes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_uid: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Identity-provider uid of the owning technician",
    )
    codigo: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Human-facing code, Cli-NNN, unique per user",
    )

    # ── Contact & address ─────────────────────────────────────────────────
    nome: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    documento: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    telefone: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    cep: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    rua: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    numero: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    referencia: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    observacoes: Mapped[str] = mapped_column(Text, nullable=False, default="")

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
        UniqueConstraint("user_uid", "codigo", name="uq_clientes_user_codigo"),
        Index("idx_clientes_user_created", "user_uid", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Client(user_uid='{self.user_uid}', codigo='{self.codigo}')>"
