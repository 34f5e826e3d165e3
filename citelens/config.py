"""Configuration management for citelens."""
import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError

DEFAULT_STYLE_URL = (
    "https://raw.githubusercontent.com/citation-style-language/styles/master/apa.csl"
)


def _parse_groups(value: Optional[str]) -> List[int]:
    """Parse a comma separated list of Zotero group ids."""
    if not value:
        return []
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise ConfigurationError(f"Invalid Zotero group list '{value}': {e}")


@dataclass
class Config:
    """citelens configuration.

    These are the global defaults. A document can override the bibliography,
    style and language for itself through its frontmatter.

    Attributes:
        bibliography_path: Global bibliography file (CSL-JSON, YAML, or anything pandoc reads)
        pull_from_zotero: Load the global bibliography from Zotero instead of a file
        zotero_port: Port of the Zotero Better BibTeX HTTP server
        zotero_groups: Zotero library/group ids to export
        csl_style_url: Default citation style id or URL
        csl_style_path: Explicit local style file, used instead of csl_style_url
        csl_lang: Default locale
        pandoc_path: Path to the pandoc executable used for bibliography conversion
        cache_dir: Directory for cached styles, locales and Zotero exports
        base_dir: Directory that relative bibliography overrides resolve against
        file_cache_size: Number of documents kept in the resolution cache
        request_timeout: Timeout in seconds for network requests
        ready_timeout: Seconds resolve() waits for initialization before reporting pending
    """

    # Bibliography
    bibliography_path: Optional[str] = None
    pull_from_zotero: bool = False
    zotero_port: int = 23119
    zotero_groups: List[int] = field(default_factory=list)

    # Style and locale
    csl_style_url: str = DEFAULT_STYLE_URL
    csl_style_path: Optional[str] = None
    csl_lang: str = "en-US"

    # External tools and storage
    pandoc_path: Optional[str] = None
    cache_dir: str = "./.citelens-cache"
    base_dir: str = "."

    # Caching
    file_cache_size: int = 10
    request_timeout: float = 30.0
    ready_timeout: float = 30.0

    def __post_init__(self):
        if self.file_cache_size < 1:
            raise ConfigurationError(
                f"file_cache_size must be at least 1, got {self.file_cache_size}"
            )

    @property
    def default_style(self) -> str:
        """Cache key of the global style (the explicit path wins over the URL)."""
        return self.csl_style_path or self.csl_style_url

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            env_file: Path to .env file (optional)

        Returns:
            Config instance with values from environment
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        try:
            return cls(
                bibliography_path=os.getenv("CITELENS_BIBLIOGRAPHY") or None,
                pull_from_zotero=os.getenv("CITELENS_PULL_FROM_ZOTERO", "false").lower()
                == "true",
                zotero_port=int(os.getenv("CITELENS_ZOTERO_PORT", "23119")),
                zotero_groups=_parse_groups(os.getenv("CITELENS_ZOTERO_GROUPS")),
                csl_style_url=os.getenv("CITELENS_CSL_STYLE_URL", DEFAULT_STYLE_URL),
                csl_style_path=os.getenv("CITELENS_CSL_STYLE_PATH") or None,
                csl_lang=os.getenv("CITELENS_CSL_LANG", "en-US"),
                pandoc_path=os.getenv("CITELENS_PANDOC_PATH") or None,
                cache_dir=os.getenv("CITELENS_CACHE_DIR", "./.citelens-cache"),
                base_dir=os.getenv("CITELENS_BASE_DIR", "."),
                file_cache_size=int(os.getenv("CITELENS_FILE_CACHE_SIZE", "10")),
                request_timeout=float(os.getenv("CITELENS_REQUEST_TIMEOUT", "30")),
                ready_timeout=float(os.getenv("CITELENS_READY_TIMEOUT", "30")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid citelens environment setting: {e}")

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Load configuration from dictionary.

        Args:
            config_dict: Dictionary with configuration values

        Returns:
            Config instance
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__annotations__})
