from pathlib import Path

from sqlalchemy import inspect

from testbridge.core.database import build_engine, create_tables, resolve_database_url


def test_database_directory_is_created(tmp_path):
    """A fresh deploy has no data directory yet; resolving the url creates it."""
    db_path = tmp_path / "nested" / "data" / "templates.db"
    url = f"sqlite:///{db_path.as_posix()}"

    assert resolve_database_url(url) == url
    assert db_path.parent.exists()


def test_non_file_urls_are_left_alone():
    assert resolve_database_url("sqlite:///:memory:") == "sqlite:///:memory:"
    assert resolve_database_url("postgresql://user:pw@db/templates") == "postgresql://user:pw@db/templates"


def test_create_tables_creates_template_table(tmp_path):
    db_path = tmp_path / "templates.db"
    engine = build_engine(resolve_database_url(f"sqlite:///{db_path.as_posix()}"))

    create_tables(bind=engine)

    assert Path(db_path).exists()
    assert "templates" in inspect(engine).get_table_names()
    engine.dispose()
