from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from database import check_connection, describe_tables, init_db


def test_init_db_creates_both_tables():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    tables = describe_tables(engine)
    assert {"recipes", "users"} <= set(tables)
    assert "url" in tables["recipes"]
    assert "date_added" in tables["recipes"]


def test_check_connection():
    assert check_connection(create_engine("sqlite://")) is True
    assert check_connection(create_engine("sqlite:////nonexistent-dir/x/recipes.db")) is False
