from sqlalchemy import Column, String, Text, Integer, DateTime, func
from sqlalchemy.orm import relationship

from podcastgen.db.session import Base

class Podcast(Base):
    """
    SQLAlchemy model for the 'podcasts' table.

    A podcast starts in 'processing' and is moved to 'success' or 'failed'
    by the generation service only.
    """
    __tablename__ = "podcasts"

    id = Column(String, primary_key=True, index=True)
    ownerId = Column(String, nullable=False, index=True)
    title = Column(String(256), nullable=False)
    summary = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="processing")

    # The source reference, e.g. ('url', 'https://...').
    sourceType = Column(String, nullable=True)
    sourceDetail = Column(Text, nullable=True)

    hostPersonalityId = Column(String, nullable=False)
    cohostPersonalityId = Column(String, nullable=False)

    # A data URI holding the encoded audio artifact.
    audioUrl = Column(Text, nullable=True)
    durationSeconds = Column(Integer, nullable=True)
    errorMessage = Column(Text, nullable=True)

    generatedAt = Column(DateTime(timezone=True), nullable=True)
    createdAt = Column(DateTime(timezone=True), server_default=func.now())
    updatedAt = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # --- Relationships ---
    transcript = relationship("Transcript", back_populates="podcast", uselist=False, cascade="all, delete-orphan")
    tags = relationship("Tag", back_populates="podcast", cascade="all, delete-orphan")
