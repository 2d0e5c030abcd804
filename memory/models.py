"""
SQLAlchemy models for variable definitions, suites, settings and per-chat values.

Suites and values are stored as JSON blobs in the camelCase shape of the
pydantic schemas so the persisted format stays stable across schema changes.
"""

from sqlalchemy import (
    Column,
    BigInteger,
    Index,
    JSON,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class VariableDefinitionRecord(Base):
    """Variable definitions - name, output tag and storage mode."""

    __tablename__ = "variable_definitions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    tag = Column(String(255), unique=True, nullable=False)
    mode = Column(String(16), nullable=False)  # "stack" or "replace"
    created_at = Column(BigInteger, nullable=False)  # ms
    updated_at = Column(BigInteger, nullable=False)  # ms

    def __repr__(self):
        return f"<VariableDefinitionRecord(id={self.id}, name='{self.name}', mode='{self.mode}')>"


class SuiteRecord(Base):
    """Suites - the full suite document lives in data."""

    __tablename__ = "suites"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    data = Column(JSON, nullable=False)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    def __repr__(self):
        return f"<SuiteRecord(id={self.id}, name='{self.name}')>"


class SettingRecord(Base):
    """Key/value settings: activeSuiteId, messageCounts."""

    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<SettingRecord(key='{self.key}')>"


class VariableValueRecord(Base):
    """Variable values - one blob per (variable, chat)."""

    __tablename__ = "variable_values"
    __table_args__ = (
        Index("idx_variable_values_chat", "chat_id"),
    )

    variable_id = Column(String(64), primary_key=True)
    chat_id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    def __repr__(self):
        return f"<VariableValueRecord(variable_id={self.variable_id}, chat_id='{self.chat_id}')>"
