"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    NOT_FOUND = 3
    INVALID_VERSION = 4
    INVALID_CONSTRAINT = 5
    FORMAT_ERROR = 6
    LOCK_CONTENTION = 7
    CONFIG_ERROR = 8


class DependencyKind(Enum):
    """Dependency kinds as recorded in the registry index."""

    NORMAL = "normal"
    BUILD = "build"
    DEV = "dev"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_SPARSE = "https://index.crates.io/"
    REGISTRY_NAME = "crates-io"
    INDEX_CONFIG_FILE = "config.json"
    DEFAULT_DOWNLOAD_TEMPLATE = "{dl}/{crate}/{version}/download"
    DOWNLOAD_MARKERS = ("{crate}", "{version}", "{prefix}", "{lowerprefix}", "{sha256-checksum}")
    NOT_FOUND_STATUSES = (404, 410, 451)
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    USER_AGENT = "whatis/0.3 (+https://crates.io)"
    DOWNLOAD_JOBS = 8

    CACHE_DIR_NAME = "whatis"
    LOCK_FILE_NAME = ".package-cache.lock"
    INDEX_DIR_NAME = "index"
    PACKAGES_DIR_NAME = "packages"

    CONFIG_FILE_NAME = "config.yml"
    ENV_CONFIG = "WHATIS_CONFIG"
    ENV_INDEX_URL = "WHATIS_INDEX_URL"
    ENV_CACHE_DIR = "WHATIS_CACHE_DIR"
    ENV_TOKEN = "WHATIS_TOKEN"
    ENV_HTTP_PROXY = "WHATIS_HTTP_PROXY"
    ENV_HTTP_TIMEOUT = "WHATIS_HTTP_TIMEOUT"
    ENV_JOBS = "WHATIS_JOBS"
    ENV_LOG_LEVEL = "WHATIS_LOG_LEVEL"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    NO_DESCRIPTION = "No description provided."
