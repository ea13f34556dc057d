"""順位変動の差分判定と通知作成.

前回と今回の順位から通知種別を決める。数値が小さいほど上位。

  前回   今回    通知
  None   None    なし
  None   n       position_found
  n      None    position_lost
  a      a       なし
  a      b<a     position_improved
  a      b>a     position_declined
"""

from __future__ import annotations

import logging

from rank_tracker.models import Keyword, NotificationEvent, NotificationType

logger = logging.getLogger(__name__)

# 通知文面 (アプリの表示言語)
_TITLES = {
    NotificationType.POSITION_FOUND: "تم العثور على الموقع",
    NotificationType.POSITION_LOST: "فقدان الترتيب",
    NotificationType.POSITION_IMPROVED: "تحسن الترتيب",
    NotificationType.POSITION_DECLINED: "تراجع الترتيب",
}


def _message(event_type: NotificationType, keyword_text: str, old: int | None, new: int | None) -> str:
    if event_type is NotificationType.POSITION_FOUND:
        return f'الكلمة المفتاحية "{keyword_text}" ظهرت في نتائج البحث بالترتيب {new}'
    if event_type is NotificationType.POSITION_LOST:
        return f'الكلمة المفتاحية "{keyword_text}" لم تعد تظهر في أول 100 نتيجة بحث'
    if event_type is NotificationType.POSITION_IMPROVED:
        return f'الكلمة المفتاحية "{keyword_text}" تحسنت من الترتيب {old} إلى {new}'
    return f'الكلمة المفتاحية "{keyword_text}" تراجعت من الترتيب {old} إلى {new}'


def diff_positions(
    previous: int | None, current: int | None, keyword_text: str
) -> NotificationEvent | None:
    """2 つの順位から通知イベントを作る. 変化が無ければ None."""
    if previous is None and current is None:
        return None
    if previous is None:
        event_type = NotificationType.POSITION_FOUND
    elif current is None:
        event_type = NotificationType.POSITION_LOST
    elif current == previous:
        return None
    elif current < previous:
        event_type = NotificationType.POSITION_IMPROVED
    else:
        event_type = NotificationType.POSITION_DECLINED

    return NotificationEvent(
        type=event_type,
        title=_TITLES[event_type],
        message=_message(event_type, keyword_text, previous, current),
        old_position=previous,
        new_position=current,
    )


def record_transition(
    store,
    keyword: Keyword,
    previous: int | None,
    current: int | None,
    user_id: str | None = None,
) -> NotificationEvent | None:
    """差分があれば通知を 1 件作成する.

    同じチェック実行に対して 2 回呼ぶと通知が重複するので、
    呼び出しは 1 キーワード × 1 実行につき 1 回だけにすること。
    """
    event = diff_positions(previous, current, keyword.keyword)
    if event is None:
        return None

    store.create_notification(
        user_id=user_id or keyword.user_id,
        keyword_id=keyword.id,
        type=event.type.value,
        title=event.title,
        message=event.message,
        old_position=event.old_position,
        new_position=event.new_position,
    )
    logger.info(
        "通知作成: keyword=%s, type=%s, %s → %s",
        keyword.keyword, event.type.value, previous, current,
    )
    return event
