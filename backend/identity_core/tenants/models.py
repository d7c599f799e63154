from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from identity_core.db.base import AuditMixin, Base, new_id


class Tenant(AuditMixin, Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)  # e.g. acme
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone1: Mapped[str | None] = mapped_column(String(20), nullable=True)
    phone2: Mapped[str | None] = mapped_column(String(20), nullable=True)
    registration_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="Standard")
    # Weak reference: plans live outside this core.
    subscription_plan_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    subscription_start_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
