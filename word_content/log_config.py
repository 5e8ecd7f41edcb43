"""structlog setup shared by the CLI and the serverless handler."""

import logging

import structlog


def configure_logging(verbose: bool = False):
    """JSON logs by default, human-readable console output when verbose."""
    renderer = structlog.dev.ConsoleRenderer() if verbose else structlog.processors.JSONRenderer()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
