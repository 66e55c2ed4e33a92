import logging
from config.settings import load_settings
from database.db import create_db_engine, init_db

logger = logging.getLogger(__name__)


def main():
    """Create the database schema and report the effective configuration"""
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info("Starting Grampanchayat Deduction Reconciliation")

    # Initialize database
    logger.info("Initializing database...")
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    settings.upload_tmp_dir.mkdir(parents=True, exist_ok=True)
    logger.info("System initialized successfully")

    print("=" * 60)
    print("Grampanchayat Deduction Reconciliation v0.1.0")
    print("=" * 60)
    print(f"Database:      {engine.url.render_as_string(hide_password=True)}")
    print(f"Upload dir:    {settings.upload_tmp_dir}")
    print(f"Object store:  {'cloudinary' if settings.object_store_configured else 'in-memory (mock)'}")
    print(f"Strict amounts: {settings.strict_entry_amounts}")
    print("\nRun 'python app.py' to start the API server.")
    print("=" * 60)


if __name__ == "__main__":
    main()
