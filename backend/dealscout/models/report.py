"""Research report produced for one approved candidate."""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Text

from dealscout.models.base import Base


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)

    company_name = Column(String(500), nullable=False)
    website_url = Column(String(1000), nullable=True)
    industry = Column(String(255), nullable=True)
    revenue_range = Column(String(100), nullable=True)
    geographic_focus = Column(String(255), nullable=True)

    report = Column(Text, nullable=False)  # markdown, numbered sections
    status = Column(String(32), default="completed", nullable=False)
    contacts_found = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
