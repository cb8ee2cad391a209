"""
conftest.py — Shared pytest fixtures for the HouseWise quote normalizer test suite.

Engine tests are pure unit tests.  API tests drive the FastAPI app in-process
through ``TestClient``; no server, database or network is involved.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Performance tracker: reset between tests so counters are deterministic
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_tracker():
    from app.services.perf_monitor import tracker
    tracker.reset()
    yield
    tracker.reset()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def client():
    """TestClient bound to the application; exceptions surface as 500s."""
    from fastapi.testclient import TestClient
    from app.main import app
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Shared sample quote data
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_quote_lines():
    """
    A small bathroom renovation quote as the parsers emit it.

    Expected classification:
      0  demolizioni_smaltimenti            800.00
      1  demolizioni_smaltimenti (no disposal mentioned)   1.200,00
      2  impianto_idrico_sanitario (tie)    no amount, brand + quantity flags
      3  pavimenti_rivestimenti_massetti    2.500,00
      4  pittura_cartongesso_controssoffitti  650
      5  unknown                            no amount
    """
    return [
        "Smaltimento macerie e detriti - 800€",
        "Demolizione pavimenti esistenti € 1.200,00",
        "Fornitura sanitari completa",
        "Posa piastrelle gres 60x60 - 2.500,00 €",
        "Tinteggiatura pareti e soffitti 650 euro",
        "Condizioni generali di contratto",
    ]


@pytest.fixture
def solar_quote_lines():
    """Photovoltaic quote lines; the panel line carries digits but no paperwork."""
    return [
        "Pannelli fotovoltaici 6kWp",
        "Inverter ibrido",
        "Pratica GSE e connessione e-distribuzione - 450€",
    ]
