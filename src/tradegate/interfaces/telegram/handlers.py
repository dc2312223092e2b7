# src/tradegate/interfaces/telegram/handlers.py

from telegram.ext import Application

from .callbacks import register_callback_handlers
from .commands import register_commands
from .errors import register_error_handler


def register_all_handlers(application: Application):
    """Commands first, then the alert decision callbacks, then the error handler."""
    register_commands(application)
    register_callback_handlers(application)
    register_error_handler(application)
