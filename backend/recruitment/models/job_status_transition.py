from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from recruitment.database import Base


class JobStatusTransition(Base):
    """One row per successful status change. Never updated or deleted here."""

    __tablename__ = "job_status_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_posting_id = Column(Integer, ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False)
    from_status = Column(Text, nullable=False)
    to_status = Column(Text, nullable=False)
    transition_reason = Column(Text)
    transition_data = Column(Text)  # JSON
    created_by = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False)

    job = relationship("JobPosting", back_populates="transitions")
