from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship
from recruitment.database import Base


class JobPosting(Base):
    __tablename__ = "job_postings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(Text, nullable=False, unique=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    location = Column(Text)
    application_deadline = Column(Text)

    status = Column(Text, nullable=False, default="draft")
    previous_status = Column(Text)
    status_changed_at = Column(Text)
    status_changed_by = Column(Integer)
    close_reason = Column(Text)
    close_notes = Column(Text)
    archive_reason = Column(Text)
    scheduled_publish_at = Column(Text)
    published_at = Column(Text)
    closed_at = Column(Text)

    created_by = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    transitions = relationship(
        "JobStatusTransition",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobStatusTransition.id",
    )
    applications = relationship("Application", back_populates="job", cascade="all, delete-orphan")
