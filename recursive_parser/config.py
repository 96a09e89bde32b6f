"""
Environment-driven configuration.

Settings are read from RECURSIVE_PARSER_* variables, optionally seeded from a
.env file, and validated by ParserSettings. Explicit keyword overrides win
over the environment.

    RECURSIVE_PARSER_HANDLER_TYPE=text
    RECURSIVE_PARSER_WRITE_LIMIT=100000
    RECURSIVE_PARSER_MAX_EMBEDDED=500
    RECURSIVE_PARSER_CATCH_EMBEDDED_EXCEPTIONS=true
    RECURSIVE_PARSER_MAX_DEPTH=32
    RECURSIVE_PARSER_DIGEST_ALGORITHMS=md5,sha256
    RECURSIVE_PARSER_DIGEST_MAX_BYTES=10485760
"""

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .schemas import ParserSettings
from .logger import get_module_logger

logger = get_module_logger("config")

ENV_PREFIX = "RECURSIVE_PARSER_"


def load_settings(
    env_file: Optional[Union[str, Path]] = None,
    **overrides
) -> ParserSettings:
    """
    Build ParserSettings from the environment.

    Args:
        env_file: Optional .env file to load first (existing variables win)
        **overrides: Field values that take precedence over the environment

    Returns:
        Validated ParserSettings

    Raises:
        pydantic.ValidationError: if a variable holds an invalid value
    """
    if env_file is not None:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    values = {}
    for field_name in ParserSettings.model_fields:
        raw = os.getenv(ENV_PREFIX + field_name.upper())
        if raw is not None and raw.strip() != "":
            values[field_name] = raw.strip()

    values.update(overrides)
    settings = ParserSettings(**values)
    logger.debug(f"Loaded settings: {settings.model_dump()}")
    return settings
