# src/tradegate/interfaces/telegram/helpers.py

import logging
from typing import TypeVar

from telegram.ext import ContextTypes

log = logging.getLogger(__name__)
T = TypeVar('T')


def get_service(context: ContextTypes.DEFAULT_TYPE, service_name: str, service_type: type[T]) -> T:
    """Retrieves a service from bot_data, checking its type."""
    try:
        service = context.bot_data['services'][service_name]
    except KeyError:
        log.critical(
            "CRITICAL: Service '%s' could not be found. Available services: %s",
            service_name, list(context.bot_data.get('services', {}).keys())
        )
        raise RuntimeError(f"Service '{service_name}' is unavailable.")
    if not isinstance(service, service_type):
        raise TypeError(f"Service '{service_name}' is not of type '{service_type.__name__}'.")
    return service
