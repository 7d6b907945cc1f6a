"""
Turn OCR text into structured fields.

parse_cost_receipt reads a payment receipt into a cost line item;
parse_prescription reads a prescription label into medication fields.
Both are best-effort: anything not found is simply left out.
"""
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from models.record import ZERO, CostLineItem, to_amount

POOL_KEYWORDS = ("统筹", "基金支付")
PERSONAL_KEYWORDS = ("账户支付", "个账", "个人账户")
SELF_KEYWORDS = ("自费", "现金", "个人支付")

_NUMBER = re.compile(r"\d+\.?\d*")

_NAME = re.compile(
    r"([一-龥\w]+(?:胶囊|片|颗粒|口服液|注射液|软膏|滴眼液|喷雾剂|丸|膏|乳膏))"
)
_DOSAGE = re.compile(r"(\d+\.?\d*\s?(?:mg|g|ml|μg|克|毫升|毫克))", re.IGNORECASE)
_PER_DOSE = re.compile(r"(每次|一次)\s?(\d+\s?(?:粒|片|袋|支|滴|丸|mg|ml|g|克|毫升|毫克))")
_FREQUENCY = re.compile(r"(每天|每日)?\s?(\d+)\s?次")
_USAGE = re.compile(r"(饭[前后]|睡前|晨起|需要时|空腹|餐[前后])")
_DURATION = re.compile(r"(?:用药|共|连续|疗程)?\s?(\d+)\s?[天日]")

DEFAULT_TIMES_BY_FREQUENCY = {
    1: ["08:00"],
    2: ["08:00", "20:00"],
    3: ["08:00", "13:00", "19:00"],
    4: ["08:00", "12:00", "16:00", "20:00"],
}


def _find_amount(lines: Sequence[str], keywords: Sequence[str]) -> Decimal:
    """Last number on the first line mentioning any keyword, or 0."""
    for line in lines:
        if any(keyword in line for keyword in keywords):
            numbers = _NUMBER.findall(line)
            if numbers:
                return to_amount(numbers[-1])
    return ZERO


def parse_cost_receipt(text: str, attachment_id: Optional[int] = None) -> CostLineItem:
    """Build a cost line item from receipt text. Missing categories are 0."""
    lines = [line for line in text.splitlines() if line.strip()]
    return CostLineItem(
        self_pay=_find_amount(lines, SELF_KEYWORDS),
        pool_pay=_find_amount(lines, POOL_KEYWORDS),
        personal_pay=_find_amount(lines, PERSONAL_KEYWORDS),
        attachment_id=attachment_id,
    )


def parse_prescription(text: str) -> Dict[str, Any]:
    """
    Pull medication fields out of prescription text.

    Returns only the keys that were found, among name, dosage, per_dose,
    frequency, times, usage and duration.
    """
    result: Dict[str, Any] = {}

    match = _NAME.search(text)
    if match:
        result["name"] = match.group(1)

    match = _DOSAGE.search(text)
    if match:
        result["dosage"] = match.group(1)

    match = _PER_DOSE.search(text)
    if match:
        result["per_dose"] = match.group(2)

    match = _FREQUENCY.search(text)
    if match:
        count = int(match.group(2))
        result["frequency"] = f"每日{count}次"
        times: Optional[List[str]] = DEFAULT_TIMES_BY_FREQUENCY.get(count)
        if times:
            result["times"] = list(times)

    match = _USAGE.search(text)
    if match:
        result["usage"] = match.group(1) + "服用"

    match = _DURATION.search(text)
    if match:
        result["duration"] = int(match.group(1))

    return result
