from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from recruitment.database import Base


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_posting_id = Column(Integer, ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(Text, nullable=False)

    job = relationship("JobPosting", back_populates="applications")
