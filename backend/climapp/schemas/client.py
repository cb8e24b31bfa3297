"""
Climapp Backend: Client Schemas
================================

What:  Request/response contract for /clientes.
How:   Responses are built from the ORM row (`from_attributes`); snake_case
       columns are exposed under the app's camelCase names through
       validation aliases.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

CLIENT_TEXT_FIELDS = (
    "nome",
    "documento",
    "telefone",
    "email",
    "cep",
    "rua",
    "numero",
    "referencia",
    "observacoes",
)


class ClientFields(BaseModel):
    """Editable client fields. Missing values are stored as ""."""

    nome: Optional[str] = None
    documento: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    cep: Optional[str] = None
    rua: Optional[str] = None
    numero: Optional[str] = None
    referencia: Optional[str] = None
    observacoes: Optional[str] = None

    model_config = {"extra": "ignore"}


class ClientCreate(ClientFields):
    uid: str = Field(min_length=1, description="Owning technician's uid")


class ClientUpdate(ClientFields):
    """Partial update: only the fields present in the body are written."""


class ClientResponse(BaseModel):
    codigo: str
    nome: str
    documento: str
    telefone: str
    email: str
    cep: str
    rua: str
    numero: str
    referencia: str
    observacoes: str
    criadoEm: datetime = Field(validation_alias=AliasChoices("created_at", "criadoEm"))
    atualizadoEm: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "atualizadoEm")
    )

    model_config = {"from_attributes": True}


class ClientCreatedResponse(BaseModel):
    success: bool = True
    message: str = "Cliente cadastrado com sucesso!"
    codigo: str
    data: ClientResponse


class ClientListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[ClientResponse]


class ClientUpdateData(ClientResponse):
    fieldsUpdated: List[str]


class ClientUpdatedResponse(BaseModel):
    success: bool = True
    message: str
    data: ClientUpdateData


class ClientDeletedData(BaseModel):
    codigo: str
    nome: str
    deletedAt: datetime


class ClientDeletedResponse(BaseModel):
    success: bool = True
    message: str
    data: ClientDeletedData
