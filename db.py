import uuid
from datetime import datetime, timezone
from contextlib import contextmanager
from typing import Generator, Optional

from loguru import logger
from sqlalchemy import (
    Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, create_engine, event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    address = Column(Text)
    gstin = Column(String(15), index=True)
    phone = Column(String(64))
    state = Column(String(64))
    state_code = Column(String(2))
    created_at = Column(DateTime(timezone=True), default=_now)

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "gstin": self.gstin,
            "phone": self.phone,
            "state": self.state,
            "state_code": self.state_code,
        }


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, index=True)
    hsn_sac_code = Column(String(16))
    created_at = Column(DateTime(timezone=True), default=_now)

    def as_dict(self):
        return {"id": self.id, "name": self.name, "hsn_sac_code": self.hsn_sac_code}


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=_uuid)
    invoice_number = Column(String(32), nullable=False, unique=True, index=True)
    invoice_date = Column(Date, nullable=False, index=True)
    transport_mode = Column(String(64))
    vehicle_number = Column(String(32))
    supply_date_time = Column(DateTime)
    place_of_supply = Column(String(128))
    po_rgp_no = Column(String(64))
    order_date = Column(Date)
    billed_to_client_id = Column(String(36), ForeignKey("clients.id"))
    shipped_to_client_id = Column(String(36), ForeignKey("clients.id"))
    total_amount_before_tax = Column(Float, default=0)
    tax_type = Column(String(16))
    cgst_rate = Column(Float, default=0)
    cgst_amount = Column(Float, default=0)
    sgst_rate = Column(Float, default=0)
    sgst_amount = Column(Float, default=0)
    igst_rate = Column(Float, default=0)
    igst_amount = Column(Float, default=0)
    packing_cartage_charges = Column(Float, default=0)
    total_amount_after_tax = Column(Float, default=0)
    total_amount_in_words = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, index=True)

    billed_client = relationship("Client", foreign_keys=[billed_to_client_id])
    shipped_client = relationship("Client", foreign_keys=[shipped_to_client_id])
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    position = Column(Integer, default=0)
    quantity = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    taxable_value = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class Database:
    """
    SQLAlchemy engine + session factory.
    Passed explicitly to the services that need it.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        kwargs = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url == "sqlite://":
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(database_url, **kwargs)
        if database_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_fks)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Database schema initialized at {}", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def _enable_sqlite_fks(dbapi_conn, _record) -> None:
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def create_database(database_url: Optional[str] = None) -> Database:
    if database_url is None:
        from config import get_settings
        database_url = get_settings().DATABASE_URL
    database = Database(database_url)
    database.init_schema()
    return database
