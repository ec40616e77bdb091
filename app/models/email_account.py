"""
EmailAccount Model
Connected mailbox accounts whose addresses identify outbound (business) mail
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.database import Base


class EmailProvider(str, Enum):
    gmail = "gmail"
    outlook = "outlook"


class AccountStatus(str, Enum):
    active = "active"
    disconnected = "disconnected"


class EmailAccount(Base):
    """
    A connected Gmail/Outlook mailbox.

    Token storage and refresh live with the OAuth integration; this table
    only records which addresses belong to the business.
    """
    __tablename__ = "email_accounts"

    id = Column(Integer, primary_key=True, index=True)

    # Stored lowercase so direction checks can compare directly
    email_address = Column(String(255), unique=True, nullable=False, index=True)
    provider = Column(String(20), nullable=False, default=EmailProvider.gmail.value)
    display_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=AccountStatus.active.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<EmailAccount(id={self.id}, email_address='{self.email_address}', status='{self.status}')>"
