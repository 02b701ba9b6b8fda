import logging
import traceback
from sqlalchemy import inspect, text

# Columns added after the first schema release: (table, column, DDL fragment)
LATE_COLUMNS = [
    ('student', 'section_id', 'INTEGER REFERENCES section(id) ON DELETE SET NULL'),
    ('student', 'user_id', 'VARCHAR(64)'),
    ('assessment', 'section_id', 'INTEGER REFERENCES section(id) ON DELETE SET NULL'),
    ('question_course_outcome', 'is_active', 'BOOLEAN DEFAULT 1 NOT NULL'),
    ('course_outcome_program_outcome', 'is_active', 'BOOLEAN DEFAULT 1 NOT NULL'),
    ('program_outcome', 'target_level', 'NUMERIC(3,2)'),
]

def add_missing_columns(engine, columns=LATE_COLUMNS):
    """Add any listed column that an existing table lacks. Returns the list of columns added."""
    inspector = inspect(engine)
    table_names = inspector.get_table_names()
    added = []

    for table, column, ddl in columns:
        if table not in table_names:
            logging.warning(f"{table} table not found. It will be created when the app runs.")
            continue

        existing = [c['name'] for c in inspector.get_columns(table)]
        if column in existing:
            logging.info(f"{column} column already exists in {table} table")
            continue

        logging.info(f"Adding {column} column to {table} table")
        with engine.begin() as connection:
            connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
        added.append(f"{table}.{column}")
        logging.info(f"Successfully added {column} column to {table} table")

    return added

def check_and_update_database(app):
    """
    Check and update the database schema if necessary.
    This function runs at app startup to handle migrations for new columns.
    """
    logging.info("Checking database schema for required columns...")

    try:
        with app.app_context():
            from models import db, Log
            added = add_missing_columns(db.engine)

            if added:
                try:
                    db.session.add(Log(action="MIGRATION_ADD_COLUMNS",
                                       description=f"Added columns: {', '.join(added)}"))
                    db.session.commit()
                except Exception as log_e:
                    db.session.rollback()
                    logging.warning(f"Could not log migration: {log_e}")

        return True

    except Exception as e:
        logging.error(f"Error checking or updating database schema: {str(e)}\n{traceback.format_exc()}")
        return False
