import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # noqa: E402

from database import check_connection, describe_tables, init_db  # noqa: E402


def main():
    print('Testing database connection...')
    if not check_connection():
        print('Cannot connect to database. Check DATABASE_URL.')
        return 1

    init_db()
    for table, columns in describe_tables().items():
        print(f'- {table}: {", ".join(columns)}')
    print('Database initialization completed')
    return 0


if __name__ == '__main__':
    sys.exit(main())
