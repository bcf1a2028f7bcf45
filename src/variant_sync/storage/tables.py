"""SQLModel ORM tables for saved models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class SavedModeledMethod(SQLModel, table=True):
    __tablename__ = "modeled_methods"  # type: ignore[bad-override]

    signature: str = Field(primary_key=True)
    package_name: str = Field(index=True)
    type_name: str = ""
    method_name: str = ""
    method_parameters: str = ""
    model_type: str = Field(index=True)
    input: str = ""
    output: str = ""
    kind: str = ""
    provenance: str = "manual"
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
