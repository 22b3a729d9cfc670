import asyncio
import logging
import shutil
import subprocess
import sys
from pathlib import Path

from sqlalchemy.engine import make_url

from app.core.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return
    if not url.database or url.database == ":memory:":
        return
    db_dir = Path(url.database).parent
    if not db_dir.exists():
        logger.info(f"Creating database directory: {db_dir}")
        db_dir.mkdir(parents=True, exist_ok=True)


def _alembic_command() -> list[str]:
    if shutil.which("alembic"):
        return ["alembic"]
    return [sys.executable, "-m", "alembic"]


async def run_migrations():
    """
    Run ``alembic upgrade head`` in a subprocess.

    alembic's env.py drives its own event loop, so it cannot run inside the
    application's loop; the subprocess is awaited off the loop instead.
    """
    logger.info("Running database migrations...")
    ensure_sqlite_directory(settings.DATABASE_URL)

    try:
        result = await asyncio.to_thread(
            subprocess.run,
            _alembic_command() + ["upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            cwd=str(PROJECT_ROOT),
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"Migration failed with exit code {e.returncode}")
        if e.stdout:
            logger.error(f"Stdout: {e.stdout}")
        if e.stderr:
            logger.error(f"Stderr: {e.stderr}")
        raise RuntimeError("Database migration failed") from e
    except OSError as e:
        logger.error(f"Could not launch alembic: {e}")
        raise RuntimeError("Database migration failed") from e

    logger.info("Migrations completed successfully")
    if result.stdout:
        logger.info(f"Alembic output: {result.stdout}")
