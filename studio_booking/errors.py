"""
Infrastructure faults and the member-facing messages for every outcome.

Business and validation outcomes are BookingError values. Only faults of
the storage collaborator are raised, and they carry their detail to the
logs, never to the member.
"""

import logging
from typing import Union

from studio_booking.schemas.booking_schema import BookingError, BookingErrorCode

logger = logging.getLogger(__name__)

MSG_TRY_AGAIN = "系统繁忙，请稍后重试"

# Short messages shown next to the booking form, by failure code.
USER_MESSAGES: dict[BookingErrorCode, str] = {
    BookingErrorCode.VALIDATION_ERROR: "请检查填写的预约信息",
    BookingErrorCode.INVALID_DURATION: "预约时长无效",
    BookingErrorCode.CLOSED_DAY: "该日期不营业",
    BookingErrorCode.OUTSIDE_HOURS: "所选时间不在营业时间内",
    BookingErrorCode.STATION_UNAVAILABLE: "该骑行台暂不可预约",
    BookingErrorCode.CONFLICT: "该时段已被预约，请选择其他时间",
    BookingErrorCode.NOT_FOUND: "预约不存在",
    BookingErrorCode.CONFIG_REJECTED: "配置无法保存",
}


class StorageFault(Exception):
    """The persistence collaborator was unreachable or failed.

    Transient: callers may retry with backoff, after re-querying, because
    a write that timed out may still have committed.
    """


def user_message(outcome: Union[BookingError, Exception]) -> str:
    """Map a failure to the text shown to a member."""
    if isinstance(outcome, BookingError):
        return USER_MESSAGES.get(outcome.code, MSG_TRY_AGAIN)
    logger.error("Unexpected fault surfaced to member: %r", outcome)
    return MSG_TRY_AGAIN
