from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime
from reconciler.database import Base


class NormalizationRule(Base):
    __tablename__ = "normalization_rules"

    id = Column(Integer, primary_key=True, index=True)

    # Stored trimmed and case-folded; one rule per pattern (last write wins)
    pattern = Column(String, nullable=False, unique=True, index=True)
    normalized_value = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AutomaticRule(Base):
    __tablename__ = "automatic_rules"

    id = Column(Integer, primary_key=True, index=True)

    kind = Column(String, nullable=False, index=True)    # incongruence wire tag, e.g. 'valores_cero'
    field = Column(String, nullable=True)                 # None = row-level kinds
    action = Column(String, nullable=False)               # normalizar | eliminar | mantener | marcar_revision | rellenar
    value = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class RuleBackup(Base):
    """Single-slot snapshot taken right before a bulk clear."""

    __tablename__ = "rule_backups"

    id = Column(Integer, primary_key=True, index=True)
    # {"normalizations": {pattern: value}, "automatic_rules": [{kind, field, action, value, created_at}]}
    snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
