import pytest

from careerquest.db.base import _build_database_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("postgres://u:p@h/db", "postgresql+psycopg2://u:p@h/db"),
        ("  postgresql://u:p@h/db ", "postgresql://u:p@h/db"),
        ("sqlite:///./local.db", "sqlite:///./local.db"),
    ],
)
def test_database_url_is_normalized(monkeypatch, raw, expected):
    monkeypatch.setenv("DATABASE_URL", raw)

    assert _build_database_url() == expected


def test_database_url_defaults_to_local_sqlite(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert _build_database_url() == "sqlite:///./careerquest.db"
