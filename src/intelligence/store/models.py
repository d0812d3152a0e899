"""
Database models for persisted research jobs.
Uses SQLite with SQLAlchemy; one row per job and one row per DAG task.
"""

from datetime import datetime
from sqlalchemy import create_engine, Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Index
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.pool import QueuePool

Base = declarative_base()


class ResearchJobRecord(Base):
    """A research request and its lifecycle state."""
    __tablename__ = 'research_jobs'
    __table_args__ = (
        Index('idx_job_state', 'state'),
        Index('idx_job_created', 'created_at'),
    )

    job_id = Column(String(32), primary_key=True)
    state = Column(String(20), nullable=False, default='pending')
    error = Column(Text)

    # Target
    company = Column(JSON, nullable=False)  # CompanyTarget fields
    requester = Column(String(255))

    # Options
    sources = Column(JSON, default=list)
    include_summaries = Column(Boolean, default=True)

    # Written once, when the job turns terminal
    report = Column(JSON)
    report_ref = Column(String(64))  # report fingerprint

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tasks = relationship('ResearchTaskRecord', back_populates='job', cascade='all, delete-orphan',
                         order_by='ResearchTaskRecord.seq')


class ResearchTaskRecord(Base):
    """One DAG node of a research job."""
    __tablename__ = 'research_tasks'
    __table_args__ = (
        Index('idx_task_job_state', 'job_id', 'state'),
    )

    job_id = Column(String(32), ForeignKey('research_jobs.job_id'), primary_key=True)
    task_id = Column(String(64), primary_key=True)  # "<kind>:<source>"

    kind = Column(String(30), nullable=False)
    source = Column(String(20))
    seq = Column(Integer, nullable=False)
    dependencies = Column(JSON, default=list)

    state = Column(String(20), nullable=False, default='pending')
    attempts = Column(Integer, default=0)
    last_error = Column(Text)

    result = Column(JSON)  # FetchResult for fetch tasks
    summary = Column(Text)  # AI_SUMMARIZE output
    result_ref = Column(String(64))  # content hash or report fingerprint

    updated_at = Column(DateTime, default=datetime.utcnow)

    job = relationship('ResearchJobRecord', back_populates='tasks')


# Database initialization
def init_db(db_path: str = 'prospect_research.db'):
    """Initialize the database with connection pooling."""
    engine = create_engine(
        f'sqlite:///{db_path}',
        echo=False,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        connect_args={'check_same_thread': False}  # Required for SQLite with threading
    )
    Base.metadata.create_all(engine)
    return engine

