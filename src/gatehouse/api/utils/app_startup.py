import logging
import sys
from pathlib import Path

from loguru import logger

from src.gatehouse.runtime.context import get_config

# Never written to a sink, whatever the caller binds
REDACTED_FIELDS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "client_secret",
        "code",
        "code_verifier",
        "saml_response",
        "session_secret",
    }
)


def redact_secrets(record) -> None:
    """Loguru patcher: default the request id and mask token-bearing extras."""
    extra = record["extra"]
    extra.setdefault("request_id", "-")
    for key in REDACTED_FIELDS.intersection(extra):
        extra[key] = "***"


def configure_logging():
    main_config = get_config()
    cfg = main_config.logging
    env = main_config.app.environment

    logger.remove()
    logger.configure(extra={"request_id": "-"}, patcher=redact_secrets)

    fmt_plain = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "[<cyan>{extra[request_id]}</cyan>] | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )
    is_json_file = cfg.format == "json"

    # Tracebacks with variable values would leak tokens and secrets in production
    verbose_tracebacks = env != "production"

    logger.add(
        sys.stderr,
        level=cfg.level,
        format=fmt_plain,
        colorize=True,
        backtrace=verbose_tracebacks,
        diagnose=verbose_tracebacks,
    )

    if cfg.file:
        path = Path(cfg.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(path),
            level=cfg.level,
            format="{message}" if is_json_file else fmt_plain,
            serialize=is_json_file,
            rotation=f"{cfg.max_size_mb} MB",
            retention=cfg.backup_count,
            compression="zip",
            enqueue=True,
            backtrace=verbose_tracebacks,
            diagnose=verbose_tracebacks,
        )

    class InterceptHandler(logging.Handler):
        """Forward stdlib records (uvicorn, httpx, sqlalchemy, signxml) to Loguru."""

        def emit(self, record: logging.LogRecord) -> None:
            if record.name == "uvicorn.access":
                return

            try:
                level = logger.level(record.levelname).name
            except ValueError:
                level = record.levelno

            logger.opt(depth=2, exception=record.exc_info).bind(
                logger_name=record.name
            ).log(level, record.getMessage())

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in list(logging.root.manager.loggerDict.keys()):
        stdlog = logging.getLogger(name)
        stdlog.handlers = []
        stdlog.propagate = True

    quiet = {
        "sqlalchemy.engine": logging.WARNING,
        "sqlalchemy.pool": logging.WARNING,
        # httpx logs full request URLs, which carry authorization codes
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "signxml": logging.WARNING,
        "uvicorn": logging.INFO,
        "uvicorn.error": logging.INFO,
        "uvicorn.access": logging.CRITICAL,
    }
    for name, level in quiet.items():
        logging.getLogger(name).setLevel(level)

    providers = [p.type for p in main_config.identity.enabled_providers()]
    logger.info(
        "Logging configured",
        app_level=cfg.level,
        app_format=cfg.format,
        app_file=cfg.file,
        environment=env,
        identity_providers=providers,
    )
