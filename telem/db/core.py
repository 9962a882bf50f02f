from contextlib import contextmanager
from typing import Optional, Iterator, Dict, Any
from sqlalchemy import create_engine, ForeignKey, Index, UniqueConstraint, Boolean, Integer, String, Text, JSON, DECIMAL, DateTime, Date
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.types import Enum
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Mapped, Session, relationship, mapped_column
from datetime import datetime, date
from decimal import Decimal
import enum

from telem import config


class NotFoundError(Exception):
    pass


class ConflictError(Exception):
    pass


class StorageError(Exception):
    pass


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls):
    # Persist the lowercase wire values rather than the member names
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    ADVISOR = "advisor"
    INVESTOR = "investor"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CalculatorStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class AnalysisType(str, enum.Enum):
    MORTGAGE = "mortgage"
    CASHFLOW = "cashflow"
    SENSITIVITY = "sensitivity"
    COMPARISON = "comparison"
    YIELD = "yield"


class AnalysisStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class UserDB(Base):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        Index("idx_users_role", "role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Authentication
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, values_callable=_enum_values), default=UserRole.INVESTOR, nullable=False)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus, values_callable=_enum_values), default=UserStatus.ACTIVE, nullable=False)

    # Denormalized count of owned calculators
    calculators_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    calculators = relationship("CalculatorDB", back_populates="user")


class CalculatorDB(Base):
    __tablename__ = "calculators"

    __table_args__ = (
        Index("idx_calculators_user", "user_id"),
        Index("idx_calculators_updated", "updated_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Financial assumptions
    self_equity: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), default=Decimal("0"), nullable=False)
    has_mortgage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_property_in_israel: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    investment_preference: Mapped[str] = mapped_column(String(50), default="positive_cashflow", nullable=False)
    exchange_rate: Mapped[Decimal] = mapped_column(DECIMAL(10, 4), default=Decimal("3.95"), nullable=False)
    vat_rate: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), default=Decimal("19"), nullable=False)
    status: Mapped[CalculatorStatus] = mapped_column(Enum(CalculatorStatus, values_callable=_enum_values), default=CalculatorStatus.DRAFT, nullable=False)

    # Denormalized display and count fields
    investor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    investment_options_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    analyses_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="calculators")
    investments = relationship("InvestmentDB", back_populates="calculator")
    analyses = relationship("AnalysisDB", back_populates="calculator")


class PropertyDB(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_without_vat: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    monthly_rent: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    guaranteed_rent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    investments = relationship("InvestmentDB", back_populates="catalog_property")


class InvestmentDB(Base):
    __tablename__ = "investments"

    __table_args__ = (
        Index("idx_investments_calculator", "calculator_id"),
        Index("idx_investments_property", "property_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    calculator_id: Mapped[int] = mapped_column(ForeignKey("calculators.id"), nullable=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # At most one selected investment per calculator
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Null overrides fall back to the property's values
    price_override: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 2))
    monthly_rent_override: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 2))

    # Feature flags
    has_furniture: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_property_management: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_real_estate_agent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    calculator = relationship("CalculatorDB", back_populates="investments")
    catalog_property = relationship("PropertyDB", back_populates="investments")
    analyses = relationship("AnalysisDB", back_populates="investment")

    @property
    def effective_price(self) -> Optional[Decimal]:
        if self.price_override is not None:
            return self.price_override
        return self.catalog_property.price_without_vat if self.catalog_property else None

    @property
    def effective_monthly_rent(self) -> Optional[Decimal]:
        if self.monthly_rent_override is not None:
            return self.monthly_rent_override
        return self.catalog_property.monthly_rent if self.catalog_property else None


class AnalysisDB(Base):
    __tablename__ = "analyses"

    __table_args__ = (
        # Default-flag exclusivity is scoped to (calculator, type)
        Index("idx_analyses_calculator_type", "calculator_id", "type"),
        Index("idx_analyses_investment", "investment_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    calculator_id: Mapped[int] = mapped_column(ForeignKey("calculators.id"), nullable=False)
    investment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("investments.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[AnalysisType] = mapped_column(Enum(AnalysisType, values_callable=_enum_values), nullable=False)

    # Payloads
    parameters: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    results: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[AnalysisStatus] = mapped_column(Enum(AnalysisStatus, values_callable=_enum_values), default=AnalysisStatus.ACTIVE, nullable=False)

    # Denormalized display fields
    calculator_name: Mapped[str] = mapped_column(String(255), nullable=False)
    investment_name: Mapped[Optional[str]] = mapped_column(String(255))

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    calculator = relationship("CalculatorDB", back_populates="analyses")
    investment = relationship("InvestmentDB", back_populates="analyses")


class SettingDB(Base):
    __tablename__ = "settings"

    __table_args__ = (
        UniqueConstraint("key", name="uq_setting_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# SQLite connections are shared across FastAPI's threadpool workers
_connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, connect_args=_connect_args)
session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# How often a repository operation re-reads a parent id that moved while it waited for a lock
LOCK_ATTEMPTS = 3


def init_db(bind=None):
    """Create missing tables. Schema changes go through Alembic."""
    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block of repository statements as one unit of work.

    Commits when the block completes and rolls back on any exception, so a
    failure part-way through never leaves counters or flags half-applied.
    Integrity violations surface as ConflictError, other driver failures as
    StorageError; domain errors raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Operation violates a database constraint") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError(f"Database operation failed: {e.__class__.__name__}") from e
    except Exception:
        db.rollback()
        raise


# Dependency to get the database session
def get_db():
    database = session_local()
    try:
        yield database
    finally:
        database.close()
