from sqlalchemy import Column, String, ForeignKey, DateTime, func
from sqlalchemy.types import JSON # Using generic JSON type for SQLite compatibility
from sqlalchemy.orm import relationship

from podcastgen.db.session import Base

class Transcript(Base):
    """
    SQLAlchemy model for the 'transcripts' table.

    Exactly one transcript per podcast. `content` is the ordered list of
    dialogue segments: [ { "speaker": "...", "line": "..." } ].
    """
    __tablename__ = "transcripts"

    id = Column(String, primary_key=True, index=True)
    podcastId = Column(String, ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=False, unique=True)
    content = Column(JSON, nullable=False, default=list)
    format = Column(String, nullable=False, default="json")
    createdAt = Column(DateTime(timezone=True), server_default=func.now())
    updatedAt = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    podcast = relationship("Podcast", back_populates="transcript")
