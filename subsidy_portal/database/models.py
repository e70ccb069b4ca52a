"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime

from sqlalchemy import TIMESTAMP, BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from subsidy_portal.core.database import Base


class StoredDocument(Base):
    """One uploaded file of an application and its compliance-check state."""

    __tablename__ = "stored_documents"
    __table_args__ = (
        UniqueConstraint("owner_ref", "document_key", name="uq_stored_documents_owner_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Enclosing application; the ownership boundary for authorization
    owner_ref: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_key: Mapped[str] = mapped_column(String, nullable=False)
    storage_path: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    mime_type: Mapped[str] = mapped_column(String, nullable=False, default="application/pdf")
    byte_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    original_file_name: Mapped[str] = mapped_column(String, nullable=False)
    upload_status: Mapped[str] = mapped_column(
        String, nullable=False, default="completed"
    )  # pending | uploading | completed | error
    ai_check_status: Mapped[str] = mapped_column(
        String, nullable=False, default="not_checked"
    )  # not_checked | checked
    ai_check_result: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    ai_check_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_checked_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
