"""Catalog of treatments and services using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    func,
)

metadata = MetaData()

products_services = Table(
    "products_services",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("title", Text, nullable=False),
    Column("item_type", String(20), nullable=False, server_default="treatment"),
    # Default duration in minutes
    Column("duration", Integer, nullable=True),
    # Overlappable treatments need no machine and never block one
    Column("is_overlappable", Boolean, nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "item_type IN ('treatment', 'service', 'product')",
        name="products_services_item_type_check",
    ),
)
