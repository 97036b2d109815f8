"""
Runtime configuration for the HTML Mapper.

Settings come from code (MapperConfig(...)) or from the environment, with a
.env file in the working directory loaded first.
"""

import os
from typing import Literal, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel

ENV_PREFIX = "HTML_MAPPER_"

# BeautifulSoup tree builders we accept.  html5lib parses the way browsers do,
# which matters for malformed pages; lxml is much faster on well-formed input.
ParserName = Literal["html5lib", "lxml", "html.parser"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


class MapperConfig(BaseModel):
    """Knobs for parsing and value coercion."""
    parser: ParserName = "html5lib"
    collapse_whitespace: bool = True    # Merge runs of whitespace in text content
    strict_coercion: bool = False       # Raise MappingError on malformed values instead of keeping defaults

    @classmethod
    def from_env(
        cls,
        load_dotenv_file: bool = True,
        dotenv_path: Optional[str] = None
    ) -> "MapperConfig":
        """
        Build a config from HTML_MAPPER_* environment variables.

        Variables already set in the environment win over the .env file.
        Unset variables keep the model defaults.
        """
        if load_dotenv_file:
            load_dotenv(dotenv_path or find_dotenv(usecwd=True))

        values = {}
        parser = os.getenv(f"{ENV_PREFIX}PARSER")
        if parser:
            values["parser"] = parser.strip()

        for name in ("collapse_whitespace", "strict_coercion"):
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw.strip().lower() in _TRUE_VALUES

        return cls(**values)
