"""Pytest configuration for test isolation.

The package reads a few ``CASHFLOW_IMPORT_*`` environment overrides (batch
size, maximum file size, log level and format). A developer shell or a local
``.env`` may set them, which would change defaults under test. An autouse fixture
clears them for every test; tests that exercise an override set it
explicitly with ``monkeypatch``.
"""

from __future__ import annotations

from pathlib import Path

import pytest

_ENV_OVERRIDES = (
    "CASHFLOW_IMPORT_BATCH_SIZE",
    "CASHFLOW_IMPORT_MAX_FILE_MB",
    "CASHFLOW_IMPORT_LOG_LEVEL",
    "CASHFLOW_IMPORT_LOG_FORMAT",
)

HEADER = "Identificador,Fecha,Estado,Tipo,Cuenta,Beneficiario,Categoria,Importe,Divisa,Numero,Notas"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mmex_content() -> str:
    """A small export in the fixed positional layout."""

    return "\n".join(
        [
            HEADER,
            "1,01/01/24,ok,,Cuenta1,Juan,Comida:Super,-250,ARS,,Compra semanal",
            "2,15/01/24,ok,,Cuenta1,Empresa SA,Sueldo,1000.50,ARS,,",
            "3,03/02/24,ok,,Cuenta1,Kiosco,Comida:Snacks,-20,ARS,7,",
        ]
    )


@pytest.fixture
def write_csv(tmp_path: Path):
    """Write ``content`` to ``tmp_path / name`` and return the path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
