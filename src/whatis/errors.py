"""Typed errors raised by the registry client core."""

from __future__ import annotations

from typing import Optional


class WhatisError(RuntimeError):
    """Base error for every failure surfaced by the core."""


class ConfigError(WhatisError):
    """Configuration file or environment value could not be used."""


class InvalidVersion(WhatisError):
    """A version string is not valid semantic versioning."""

    def __init__(self, text: str, reason: Optional[str] = None) -> None:
        message = f"invalid version {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.text = text


class InvalidConstraint(WhatisError):
    """A version requirement string cannot be parsed."""

    def __init__(self, text: str, reason: Optional[str] = None) -> None:
        message = f"invalid version requirement {text!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.text = text


class NotFound(WhatisError):
    """No package (or no version of it) matches the request."""

    def __init__(self, name: str, constraint: str = "*", detail: Optional[str] = None) -> None:
        message = f"Failed to find crate `{name} = \"{constraint}\"`"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.name = name
        self.constraint = constraint


class NetworkError(WhatisError):
    """Transport level failure: DNS, TLS, connection, timeout or server error."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        message = f"failed to fetch {url}: {reason}"
        super().__init__(message)
        self.url = url
        self.reason = reason
        self.status_code = status_code


class FormatError(WhatisError):
    """Index or manifest data is malformed."""


class LockContention(WhatisError):
    """The package cache lock is held by another process."""

    def __init__(self, path: str) -> None:
        super().__init__(f"package cache lock {path} is held by another process")
        self.path = path
