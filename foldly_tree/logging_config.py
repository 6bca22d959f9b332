from __future__ import annotations

"""Central logging configuration for the tree engine.

Import and call :func:`setup_logging` at application start-up.
"""

import copy
import logging
import logging.config
import os

from foldly_tree.config import ConfigManager

__all__ = ["setup_logging"]

_MUTATION_LOGGERS = (
    "foldly_tree.core.services.tree_mutation_service",
    "foldly_tree.core.services.operation_serializer",
)


def setup_logging() -> None:
    """Configure logging for the application using configuration from YAML files."""
    log_dir = os.environ.get("FOLDLY_LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "foldly_tree.log")

    logging_config = copy.deepcopy(ConfigManager().get_logging_config())
    if logging_config and isinstance(logging_config, dict) and logging_config.get("version"):
        if "handlers" in logging_config and "file" in logging_config["handlers"]:
            logging_config["handlers"]["file"]["filename"] = log_file
        try:
            logging.config.dictConfig(logging_config)
            logging.info("===== Logging initialised from config files =====")
        except (ValueError, TypeError, AttributeError, ImportError) as exc:
            _setup_minimal_logging()
            logging.error("Invalid logging config, using minimal fallback: %s", exc)
    else:
        _setup_minimal_logging()
        logging.warning("===== Logging initialised with minimal fallback (no config) =====")

    _apply_debug_overrides()


def _setup_minimal_logging() -> None:
    """Set up minimal console-only logging when config is unavailable."""
    minimal_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'simple': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'simple',
                'level': 'INFO',
            },
        },
        'root': {
            'level': 'INFO',
            'handlers': ['console'],
        },
    }
    logging.config.dictConfig(minimal_config)


def _apply_debug_overrides() -> None:
    """Apply environment-driven module-specific debug overrides.

    Supports:
    - FOLDLY_DEBUG_MUTATIONS=true  -> DEBUG for the mutation service and serializer
    - FOLDLY_DEBUG_MODULES=comma,separated,logger,names -> DEBUG for listed loggers
    """
    debug_mutations = os.environ.get('FOLDLY_DEBUG_MUTATIONS', '').strip().lower() in {'1', 'true', 'yes', 'on'}
    extra_modules = os.environ.get('FOLDLY_DEBUG_MODULES', '').strip()
    targets = []
    if debug_mutations:
        targets.extend(_MUTATION_LOGGERS)
    if extra_modules:
        targets.extend([m.strip() for m in extra_modules.split(',') if m.strip()])
    for name in targets:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        # Ensure at least one handler emits DEBUG for this logger
        has_debug_handler = any(h.level <= logging.DEBUG for h in logger.handlers)
        if not has_debug_handler:
            h = logging.StreamHandler()
            h.setLevel(logging.DEBUG)
            h.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            logger.addHandler(h)
        logger.info("Debug override active for logger '%s'", name)
