"""
Climapp Backend: Atendimento (Service Ticket) Schemas
======================================================

What:  Request/response contract for /atendimentos, including the saved
       orçamento (estimate).
How:   The app sends capitalised keys for two fields (`Produto`, `Status`);
       request models accept them through aliases, and responses emit them
       the same way so the app reads back what it wrote.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class AtendimentoFields(BaseModel):
    produto: Optional[str] = Field(default=None, alias="Produto")
    clienteCodigo: Optional[str] = None
    clienteNome: Optional[str] = None
    data: Optional[str] = Field(default=None, description="Visit date as typed in the app")
    descricaoDefeito: Optional[str] = None
    foto: Optional[str] = Field(default=None, description="Hosted image URL")
    hora: Optional[str] = None
    modelo: Optional[str] = None
    valorVisita: Optional[str] = None
    status: Optional[str] = Field(default=None, alias="Status")

    model_config = {"extra": "ignore", "populate_by_name": True}


class AtendimentoCreate(AtendimentoFields):
    uid: str = Field(min_length=1)


class AtendimentoUpdate(AtendimentoFields):
    """Partial update. An invalid Status is rejected (not normalised)."""


class GarantiaInfo(BaseModel):
    temGarantia: bool = False
    tipo: str = ""
    tempo: str = ""


class OrcamentoRequest(BaseModel):
    """
    Body of POST /atendimentos/{codigo}/orcamento.

    `userId` is optional here so a missing value yields 400 MISSING_USER_ID.
    Materials and services are stored as the app sends them.
    """

    userId: Optional[str] = None
    clienteNome: str = ""
    produto: str = ""
    materiais: List[Dict[str, Any]] = Field(default_factory=list)
    servicos: List[Dict[str, Any]] = Field(default_factory=list)
    garantia: GarantiaInfo = Field(default_factory=GarantiaInfo)
    visitaRecebida: bool = False
    valorVisita: str = "0,00"
    valorTotal: str = "R$ 0,00"
    timestamp: Optional[str] = None

    model_config = {"extra": "ignore"}


class AtendimentoResponse(BaseModel):
    codigo: str
    produto: str = Field(
        validation_alias=AliasChoices("produto", "Produto"), serialization_alias="Produto"
    )
    clienteCodigo: str = Field(validation_alias=AliasChoices("cliente_codigo", "clienteCodigo"))
    clienteNome: str = Field(validation_alias=AliasChoices("cliente_nome", "clienteNome"))
    data: str
    descricaoDefeito: str = Field(
        validation_alias=AliasChoices("descricao_defeito", "descricaoDefeito")
    )
    foto: Optional[str] = None
    hora: str
    modelo: str
    valorVisita: str = Field(validation_alias=AliasChoices("valor_visita", "valorVisita"))
    status: str = Field(
        validation_alias=AliasChoices("status", "Status"), serialization_alias="Status"
    )
    orcamento: Optional[Dict[str, Any]] = None
    criadoEm: datetime = Field(validation_alias=AliasChoices("created_at", "criadoEm"))
    atualizadoEm: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "atualizadoEm")
    )

    model_config = {"from_attributes": True}


class AtendimentoListItem(AtendimentoResponse):
    """Listing row, enriched with the linked client's street address."""

    rua: Optional[str] = None
    numero: Optional[str] = None


class AtendimentoCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Atendimento iniciado com sucesso!"
    codigo: str
    data: AtendimentoResponse


class AtendimentoListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[AtendimentoListItem]


class AtendimentoDetailResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: AtendimentoResponse


class AtendimentoDeletedData(BaseModel):
    codigo: str
    deletedAt: datetime


class AtendimentoDeletedResponse(BaseModel):
    success: bool = True
    message: str
    data: AtendimentoDeletedData


class StagesData(BaseModel):
    estagios: List[str]
    padrao: str
    descricao: Dict[str, str]


class StagesResponse(BaseModel):
    success: bool = True
    message: str = "Lista de estágios válidos para atendimento"
    data: StagesData


class OrcamentoSavedData(BaseModel):
    atendimentoId: str
    status: str = Field(
        validation_alias=AliasChoices("status", "Status"), serialization_alias="Status"
    )
    orcamento: Dict[str, Any]


class OrcamentoSavedResponse(BaseModel):
    success: bool = True
    message: str = "Orçamento salvo com sucesso"
    data: OrcamentoSavedData
