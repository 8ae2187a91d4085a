import sys

from loguru import logger

from config import COMPANY_PROFILE, configure_logging, get_settings


def test_settings_defaults(monkeypatch):
    for name in ("DATABASE_URL", "INVOICE_PREFIX", "INVOICE_NUMBER_WIDTH", "PAGE_SIZE", "DEBUG"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.DATABASE_URL == "sqlite:///invoices.db"
        assert settings.INVOICE_PREFIX == "SRPT"
        assert settings.INVOICE_NUMBER_WIDTH == 3
        assert settings.PAGE_SIZE == 7
        assert settings.DEBUG is False
    finally:
        get_settings.cache_clear()


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("INVOICE_PREFIX", "INV")
    monkeypatch.setenv("PAGE_SIZE", "20")
    monkeypatch.setenv("DEBUG", "yes")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert (settings.INVOICE_PREFIX, settings.PAGE_SIZE, settings.DEBUG) == ("INV", 20, True)
    finally:
        get_settings.cache_clear()


def test_company_profile():
    assert COMPANY_PROFILE.state_code == COMPANY_PROFILE.gstin[:2]
    assert len(COMPANY_PROFILE.terms) == 4


def test_debug_forces_debug_logging(capsys):
    try:
        assert configure_logging("warning") == "WARNING"
        logger.info("hidden message")
        assert configure_logging("INFO", debug=True) == "DEBUG"
        logger.debug("visible message")
        err = capsys.readouterr().err
        assert "visible message" in err
        assert "hidden message" not in err
    finally:
        logger.remove()
        logger.add(sys.__stderr__)
