from datetime import datetime, timezone
from sqlalchemy import BigInteger, Double, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from telemetry.db import Base

# BigInteger for PostgreSQL, Integer for SQLite (SQLite only auto-increments INTEGER)
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class BatchRecord(Base):
    """One stored batch document."""

    __tablename__ = "batch_documents"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(Text, nullable=False)
    document_key: Mapped[str] = mapped_column(Text, nullable=False)
    batch_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    num_samples: Mapped[int] = mapped_column(Integer, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    written_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("collection", "document_key", name="uq_batch_document"),
        Index("idx_batch_collection_time", "collection", "batch_timestamp"),
    )


class SampleReading(Base):
    """One channel reading of one sample, expanded from a batch document."""

    __tablename__ = "telemetry_samples"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(Text, nullable=False)
    document_key: Mapped[str] = mapped_column(Text, nullable=False)
    sample_index: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel: Mapped[int] = mapped_column(Integer, nullable=False)
    # NULL when the channel failed to decode on the relay side
    value: Mapped[float | None] = mapped_column(Double)

    __table_args__ = (
        Index("idx_sample_document", "collection", "document_key"),
        Index("idx_sample_time", "collection", "timestamp_ms", "channel"),
    )
