from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from podcastgen.db.session import Base

class Tag(Base):
    """
    SQLAlchemy model for the 'tags' table. A free-text label attached to a podcast.
    """
    __tablename__ = "tags"

    podcastId = Column(String, ForeignKey("podcasts.id", ondelete="CASCADE"), primary_key=True)
    tag = Column(String, primary_key=True)

    podcast = relationship("Podcast", back_populates="tags")
