import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

from thds.core import config

logger = logging.getLogger(__name__)

workdir_root: config.ConfigItem[Path] = config.item(
    "workdir", parse=Path, default=Path(tempfile.gettempdir()) / "painpoint"
)


def create_job_workdir(job_id: str) -> Path:
    """A fresh directory that belongs to this job alone."""
    root = workdir_root()
    root.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f"transcript_{job_id}_", dir=root))


async def remove_workdir(workdir: Path) -> None:
    """Best-effort; a leftover scratch dir must never change a job's outcome."""
    try:
        logger.info(f"Cleaning up workdir: {workdir}")
        await asyncio.to_thread(shutil.rmtree, workdir)
    except FileNotFoundError:
        pass
    except OSError as err:
        logger.warning(f"Could not clean up workdir {workdir}: {err}")
