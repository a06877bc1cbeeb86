"""Errors raised while loading family data."""

import logging

logger = logging.getLogger("familygraph.errors")


PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
PROFILE_NOT_ACCESSIBLE = "PROFILE_NOT_ACCESSIBLE"
ID_NOT_PROVIDED = "ID_NOT_PROVIDED"
READ_FAILED = "READ_FAILED"
ERROR_LOADING_UPLOADED_FILE = "ERROR_LOADING_UPLOADED_FILE"


# Default English messages keyed by "error.<CODE>".
ERROR_MESSAGES = {
    f"error.{PROFILE_NOT_FOUND}": "WikiTree profile {id} not found",
    f"error.{PROFILE_NOT_ACCESSIBLE}": "WikiTree profile {id} is not accessible. Try logging in.",
    f"error.{ID_NOT_PROVIDED}": "WikiTree id needs to be provided",
    f"error.{READ_FAILED}": "Failed to read GEDCOM file",
    f"error.{ERROR_LOADING_UPLOADED_FILE}": "Error loading data. Please upload your file again.",
}


class TreeError(Exception):
    """Error carrying a stable code and interpolation arguments for localization."""

    def __init__(self, code: str, message: str, args: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.args_map = dict(args or {})

    def __str__(self) -> str:
        return self.message


def get_i18n_message(error: Exception, messages: dict[str, str] | None = None) -> str:
    """
    Returns a translated message for the given error.
    Falls back to the error's own message when no template applies.
    """
    if not isinstance(error, TreeError):
        return str(error)

    template = (messages or {}).get(f"error.{error.code}") or ERROR_MESSAGES.get(f"error.{error.code}")
    if not template:
        return error.message
    try:
        return template.format(**error.args_map)
    except (KeyError, IndexError):
        logger.debug(f"Message template for {error.code} does not match args {error.args_map}")
        return error.message
