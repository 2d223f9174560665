"""Log redaction for collector and sync output.

Collector debug lines can quote search queries, commit messages and
document text; the sync client logs request details that carry the API
token.  Both pass through :class:`SanitizingFilter`, which masks those
values before any handler formats them.
"""

from __future__ import annotations

import logging
import re
from typing import Final

# Payload and state keys whose values never reach a log line.
_SENSITIVE_KEYS: Final[tuple[str, ...]] = (
    "commit_message",
    "commitMessage",
    "authorization",
    "session_token",
    "sessionToken",
    "token",
    "query",
    "text",
)

_REDACTED: Final[str] = "[REDACTED]"

_KEY_VALUE: Final[re.Pattern[str]] = re.compile(
    r"\b(?P<key>"
    + "|".join(re.escape(k) for k in _SENSITIVE_KEYS)
    + r")\s*[=:]\s*(?P<value>\"[^\"]*\"|'[^']*'|(?:Bearer\s+)?\S+)",
    re.IGNORECASE,
)

# A bearer credential quoted on its own, e.g. inside a dumped header dict.
_BEARER: Final[re.Pattern[str]] = re.compile(r"\bBearer\s+[^\s'\",}]+", re.IGNORECASE)


def redact_message(message: str) -> str:
    """Mask sensitive values in *message*.

    ``token=abc`` and ``query: "x"`` become ``token=[REDACTED]`` and
    ``query=[REDACTED]``; a stray ``Bearer abc`` becomes
    ``Bearer [REDACTED]``.
    """
    message = _KEY_VALUE.sub(lambda m: f"{m.group('key')}={_REDACTED}", message)
    return _BEARER.sub(f"Bearer {_REDACTED}", message)


class SanitizingFilter(logging.Filter):
    """Rewrites each record's message through :func:`redact_message`."""

    def filter(self, record: logging.LogRecord) -> bool:
        # %-args are merged first so a token passed as an argument is masked too.
        if record.args:
            record.msg = redact_message(record.getMessage())
            record.args = None
        else:
            record.msg = redact_message(str(record.msg))
        return True


def install_sanitizing_filter(
    logger: logging.Logger | None = None,
    *,
    handler_level: bool = False,
) -> SanitizingFilter:
    """Attach a new :class:`SanitizingFilter` and return it.

    Args:
        logger: Logger to protect; the root logger when ``None``.
        handler_level: Attach to each of the logger's handlers rather than
            the logger.  Records from ``devtracker.*`` child loggers only
            meet handler filters on the root, so :func:`configure_logging`
            uses this.
    """
    filt = SanitizingFilter()
    target = logger or logging.getLogger()

    if handler_level:
        for handler in target.handlers:
            handler.addFilter(filt)
    else:
        target.addFilter(filt)

    return filt


def configure_logging(verbose: bool = False) -> None:
    """Set up root logging for the ``devtracker`` CLI with redaction on."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    install_sanitizing_filter(handler_level=True)
