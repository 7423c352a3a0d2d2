"""Run entry point: logging setup, fatal error handling and exit codes.

Exit codes:
    0  every object succeeded (or was skipped / planned)
    1  fatal error (configuration, authentication, or a run that could not
       finish, such as an unwritable reports directory)
    3  the run completed but some objects failed
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

import requests
from azure.core.credentials import TokenCredential

from .auth import AuthenticationError, build_credential, verify_credential
from .config import RunContext
from .graph import GraphClient
from .hydrator import HydrationResult, Hydrator

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_OBJECT_FAILURES = 3

# LogRecord attributes that are not user-supplied extras
_RESERVED_RECORD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_FIELDS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_format: str = "text", verbose: bool = False) -> None:
    """Configure logging to stdout.

    Args:
        log_format: "json" for one JSON object per line, "text" for humans.
        verbose: Include debug messages.
    """
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(message)s", datefmt="%H:%M:%S")
        )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Reduce noise from Azure SDK and HTTP stack
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("msal").setLevel(logging.WARNING)


def exit_code_for(result: HydrationResult) -> int:
    if result.error is not None:
        return EXIT_FATAL
    return EXIT_OK if result.success else EXIT_OBJECT_FAILURES


def run(
    context: RunContext,
    credential: TokenCredential | None = None,
    session: requests.Session | None = None,
) -> int:
    """Authenticate, hydrate and report.

    Args:
        context: Validated run configuration.
        credential: Pre-built credential; built from the context if None.
        session: HTTP session for Graph calls; a new one if None.

    Returns:
        Process exit code.
    """
    logger = logging.getLogger(__name__)

    try:
        if credential is None:
            credential = build_credential(context)
        verify_credential(credential, context.graph_scope)
    except AuthenticationError as e:
        logger.error("Authentication error", extra={"error": str(e)})
        return EXIT_FATAL

    client = GraphClient.from_context(context, credential, session=session)
    result = Hydrator(context, client).run()

    summary = result.summary
    logger.info(
        "Hydration run complete",
        extra={
            "summary": summary.to_dict(),
            "reports": [str(p) for p in result.report_paths],
        },
    )
    return exit_code_for(result)
