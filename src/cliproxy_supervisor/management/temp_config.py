"""Temporary config files handed to the proxy via --config."""

import shutil
import tempfile
from pathlib import Path
from typing import Union

import aiofiles
import structlog

logger = structlog.get_logger(__name__)

SERVER_PREFIX = "cliproxyapi-"
LOGIN_PREFIX = "cliproxyapi-login-"
CONFIG_FILENAME = "config.yaml"


async def write_temp_config(content: str, prefix: str = SERVER_PREFIX) -> Path:
    """Write config text into a fresh private temporary directory.

    Args:
        content: Rendered config document
        prefix: Name prefix of the temporary directory

    Returns:
        Path: Path of the written config file
    """
    directory = Path(tempfile.mkdtemp(prefix=prefix))
    config_path = directory / CONFIG_FILENAME
    try:
        async with aiofiles.open(config_path, "w", encoding="utf-8") as f:
            await f.write(content)
    except OSError:
        shutil.rmtree(directory, ignore_errors=True)
        raise

    logger.debug("Config materialized", path=str(config_path))
    return config_path


async def cleanup_temp_config(config_path: Union[str, Path]) -> None:
    """Remove a config file together with its temporary directory.

    Failures are logged and ignored.
    """
    directory = Path(config_path).parent
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Failed to remove temporary config", path=str(directory), error=str(e))
