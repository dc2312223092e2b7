# src/tradegate/interfaces/telegram/keyboards.py

import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

logger = logging.getLogger(__name__)

MAX_CALLBACK_DATA_LENGTH = 64


# --- Core Callback Architecture ---
class CallbackNamespace(Enum):
    ALERT = "alert"


class CallbackAction(Enum):
    CONFIRM = "cf"
    CANCEL = "cn"


class CallbackBuilder:
    @staticmethod
    def create(namespace: Union[CallbackNamespace, str], action: Union[CallbackAction, str], *params) -> str:
        """Builds a callback data string. Raises if it would exceed Telegram's limit."""
        ns_val = namespace.value if isinstance(namespace, CallbackNamespace) else namespace
        act_val = action.value if isinstance(action, CallbackAction) else action
        param_str = ":".join(map(str, params))
        base = f"{ns_val}:{act_val}"
        if param_str:
            base = f"{base}:{param_str}"

        # A truncated id would point at another alert.
        if len(base.encode("utf-8")) > MAX_CALLBACK_DATA_LENGTH:
            raise ValueError(f"Callback data longer than {MAX_CALLBACK_DATA_LENGTH} bytes: {base}")
        return base

    @staticmethod
    def parse(callback_data: str) -> Dict[str, Any]:
        parts = (callback_data or "").split(":")
        return {
            "raw": callback_data,
            "namespace": parts[0] if parts else None,
            "action": parts[1] if len(parts) > 1 else None,
            "params": parts[2:] if len(parts) > 2 else [],
        }


def parse_alert_callback(callback_data: str) -> Optional[Tuple[CallbackAction, int]]:
    """Returns (action, alert_id) for a well-formed alert decision callback, else None."""
    parsed = CallbackBuilder.parse(callback_data)
    if parsed["namespace"] != CallbackNamespace.ALERT.value or len(parsed["params"]) != 1:
        return None
    try:
        action = CallbackAction(parsed["action"])
        alert_id = int(parsed["params"][0])
    except (ValueError, TypeError):
        return None
    return action, alert_id


class ButtonTexts:
    CONFIRM = "✅ Confirm Trade"
    CANCEL = "❌ Cancel"


def alert_decision_keyboard(alert_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(
            ButtonTexts.CONFIRM,
            callback_data=CallbackBuilder.create(CallbackNamespace.ALERT, CallbackAction.CONFIRM, alert_id),
        ),
        InlineKeyboardButton(
            ButtonTexts.CANCEL,
            callback_data=CallbackBuilder.create(CallbackNamespace.ALERT, CallbackAction.CANCEL, alert_id),
        ),
    ]])
