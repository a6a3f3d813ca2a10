"""SQLAlchemy model definitions for organisations and their clients."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID


class Organization(Base):
    """Accounting firm owning a portfolio of clients."""

    __tablename__ = "organizations"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    clients = relationship("Client", back_populates="organization")


class Client(Base):
    """Company whose accounting exports are collected by an organisation."""

    __tablename__ = "clients"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        GUID(),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    organization = relationship("Organization", back_populates="clients")
    periods = relationship(
        "ComptablePeriod",
        back_populates="client",
        order_by="ComptablePeriod.period_start",
    )
    files = relationship("ComptableFile", back_populates="client")


Index("clients_organization_idx", Client.organization_id)
