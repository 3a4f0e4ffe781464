"""ボット送信の検出（ハニーポット）。"""

from __future__ import annotations

from contact_intake.core.models import ValidatedMessage


def is_trapped(message: ValidatedMessage) -> bool:
    """画面に表示しない trap_field が埋まっていれば自動送信とみなす。"""

    return message.trap_field != ""
