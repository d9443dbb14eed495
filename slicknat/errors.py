"""Exception types raised by the SlickNAT daemon and client."""


class SlickNatError(Exception):
    """Base class for every SlickNAT error."""


class AddressParseError(SlickNatError, ValueError):
    """An IPv6 literal could not be parsed."""

    def __init__(self, text: str, reason: str = "Invalid IPv6 address format"):
        super().__init__(f"{reason}: {text!r}")
        self.text = text
        self.reason = reason


class RuleSyntaxError(SlickNatError, ValueError):
    """A mapping-source line does not follow the rule grammar."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RequestError(SlickNatError):
    """A wire request is malformed or lacks a required field."""


class MappingNotFoundError(SlickNatError):
    """
    No rule satisfied a query.

    ``available_mappings`` is the size of the table that was searched; it is
    only reported for global-unicast lookups.
    """

    def __init__(self, ip: str, message: str, available_mappings=None):
        super().__init__(message)
        self.ip = ip
        self.message = message
        self.available_mappings = available_mappings


class SourceUnavailableError(SlickNatError):
    """The mapping source could not be opened or read."""

    def __init__(self, path, cause: Exception):
        super().__init__(f"Cannot open {path}: {cause}")
        self.path = path
        self.cause = cause


class ConfigError(SlickNatError):
    """The daemon configuration is unreadable or invalid."""
