"""Create clientes and atendimentos tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the two tables the app persists: a technician's customers
       (clientes) and their service tickets (atendimentos).
How:   Both tables are scoped by the identity provider's uid; the
       human-facing code is unique per uid.

Rollback: downgrade() drops both tables (destructive, all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _text_column(name: str, length: Union[int, None] = 255) -> sa.Column:
    column_type = sa.String(length) if length else sa.Text()
    return sa.Column(name, column_type, nullable=False, server_default=sa.text("''"))


def upgrade() -> None:
    """Create both tables with their unique codes and listing indexes."""
    op.create_table(
        "clientes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_uid",
            sa.String(128),
            nullable=False,
            comment="Identity-provider uid of the owning technician",
        ),
        sa.Column(
            "codigo",
            sa.String(20),
            nullable=False,
            comment="Human-facing code, Cli-NNN, unique per user",
        ),
        _text_column("nome"),
        _text_column("documento", 32),
        _text_column("telefone", 32),
        _text_column("email"),
        _text_column("cep", 16),
        _text_column("rua"),
        _text_column("numero", 32),
        _text_column("referencia"),
        _text_column("observacoes", None),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_uid", "codigo", name="uq_clientes_user_codigo"),
    )
    # Listing is always "this user's clients by creation time"
    op.create_index("idx_clientes_user_created", "clientes", ["user_uid", "created_at"])

    op.create_table(
        "atendimentos",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_uid", sa.String(128), nullable=False),
        sa.Column(
            "codigo",
            sa.String(20),
            nullable=False,
            comment="Human-facing code, Atend-NN, unique per user",
        ),
        _text_column("produto"),
        _text_column("cliente_codigo", 20),
        _text_column("cliente_nome"),
        _text_column("data", 32),
        _text_column("hora", 16),
        _text_column("descricao_defeito", None),
        sa.Column("foto", sa.Text(), nullable=True),
        _text_column("modelo"),
        _text_column("valor_visita", 32),
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'Diagnóstico'"),
            comment="One of: Diagnóstico, Aguardando, Aprovado, Recusado, Executado, Garantia",
        ),
        sa.Column(
            "orcamento",
            sa.JSON(),
            nullable=True,
            comment="Saved estimate: materials, services, warranty, totals",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_uid", "codigo", name="uq_atendimentos_user_codigo"),
    )
    op.create_index(
        "idx_atendimentos_user_created", "atendimentos", ["user_uid", "created_at"]
    )


def downgrade() -> None:
    """Drop both tables. WARNING: destructive."""
    op.drop_index("idx_atendimentos_user_created", table_name="atendimentos")
    op.drop_table("atendimentos")
    op.drop_index("idx_clientes_user_created", table_name="clientes")
    op.drop_table("clientes")
