import os
import sys
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel


_ENV_PATH = os.path.join(os.path.dirname(__file__), ".env")
load_dotenv(dotenv_path=_ENV_PATH, override=False)


def _get_env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


class Settings(BaseModel):
    DATABASE_URL: str
    INVOICE_PREFIX: str
    INVOICE_NUMBER_WIDTH: int
    PAGE_SIZE: int
    PDF_FONT_PATH: str
    LOG_LEVEL: str
    DEBUG: bool


class CompanyProfile(BaseModel):
    name: str
    address_line1: str
    address_line2: str
    mobile: str
    email: str
    gstin: str
    state_code: str
    bank_name: str
    bank_branch: str
    bank_account_no: str
    bank_ifsc_code: str
    terms: List[str]
    signatory_text: str


# ---------------------------------------------------
# BRANDING INFO
# ---------------------------------------------------
COMPANY_PROFILE = CompanyProfile(
    name="S. R. PRECISION TOOLS",
    address_line1="Khasra No. 1087, Block-C, Gali No. 2, Saddik Nagar",
    address_line2="Meerut Road, Ghaziabad - 201003",
    mobile="9810789597, 9278016241",
    email="srprecisiontools17@gmail.com",
    gstin="09ADJFS4409B1Z6",
    state_code="09",
    bank_name="PUNJAB NATIONAL BANK",
    bank_branch="Meerut Road, Ghaziabad",
    bank_account_no="4021002100017934",
    bank_ifsc_code="PUNB0402100",
    terms=[
        "All disputes will be settled subject to Ghaziabad Jurisdiction.",
        "Goods once sold can not be taken back.",
        "Seller is not responsible for any loss, damage of goods in transit.",
        "Interest @ 24% p.a. will be charged from the date of Invoice.",
    ],
    signatory_text="For S.R. PRECISION TOOLS",
)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        DATABASE_URL=_get_env("DATABASE_URL", "sqlite:///invoices.db"),
        INVOICE_PREFIX=_get_env("INVOICE_PREFIX", "SRPT"),
        INVOICE_NUMBER_WIDTH=int(_get_env("INVOICE_NUMBER_WIDTH", "3")),
        PAGE_SIZE=int(_get_env("PAGE_SIZE", "7")),
        PDF_FONT_PATH=_get_env("PDF_FONT_PATH", ""),
        LOG_LEVEL=_get_env("LOG_LEVEL", "INFO"),
        DEBUG=_get_bool("DEBUG", False),
    )


def configure_logging(level: str = "INFO", debug: bool = False) -> str:
    """
    Replace loguru's default sink with a single stderr sink at ``level``.
    ``debug`` forces DEBUG and turns on loguru's backtrace and variable dump.
    Returns the level in effect.
    """
    level = "DEBUG" if debug else level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, backtrace=debug, diagnose=debug)
    return level
