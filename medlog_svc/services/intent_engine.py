"""
Local rule-based assistant that answers questions about the user's records.

Questions are matched against a flat, ordered list of intents. Each intent
has one or more regular expressions and an async handler; the first intent
with any matching pattern wins and only that handler runs. Nothing leaves
the process: handlers read the record and medication services and format a
reply string.

Usage:
    engine = IntentEngine(record_service, medication_service)
    reply = await engine.answer("我一共花了多少钱")
    print(reply.intent, reply.text)
"""
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from models.record import ZERO, VisitRecord
from core.datetime_utils import parse_calendar_date, utc_now

logger = logging.getLogger(__name__)

GREETING_REPLY = (
    "您好！我是您的就诊记录助手。您可以问我花费、就诊次数、正在服用的药物，"
    "或者某项检查上次是什么时候做的。"
)
HELP_REPLY = (
    "我可以帮您：\n"
    "1. 统计医疗花费，例如「我一共花了多少钱」\n"
    "2. 统计就诊次数，例如「我今年去了几次医院」\n"
    "3. 查看正在服用的药物，例如「我正在吃什么药」\n"
    "4. 查看最近一次就诊，例如「最近一次就诊是什么」\n"
    "5. 查找某项就诊的时间，例如「上次去看牙科是什么时候」"
)
UNKNOWN_REPLY = "抱歉，我还不太明白您的问题。您可以试着问我花费、就诊次数、用药情况，或输入「帮助」查看示例。"
ERROR_REPLY = "抱歉，处理您的问题时出错了，请稍后再试。"
NO_RECORDS_REPLY = "暂无就诊记录。"
NO_ACTIVE_MEDICATIONS_REPLY = "您目前没有正在进行的服药计划。"
EMPTY_KEYWORD_REPLY = "请告诉我更具体的内容，例如「上次去看牙科是什么时候」。"

# Queries that match no intent but mention records are answered with counts.
FALLBACK_KEYWORD = "记录"

DEFAULT_STOP_PHRASES = (
    "是什么时候", "什么时候", "最后一次", "最近一次", "上一次", "上次",
    "多久没", "哪一天", "哪天", "看病", "就诊", "我的", "我",
    "是", "的", "了", "吗", "呢", "啊", "？", "?", "。", "，", ",", "！", "!",
)
DEFAULT_VERB_PREFIXES = ("去", "看", "做", "查", "拍", "打", "开")

Handler = Callable[[str], Awaitable[str]]


@dataclass
class AssistantReply:
    intent: str
    text: str


@dataclass
class Intent:
    """A named rule: fires when any of its patterns is found in the question."""

    name: str
    patterns: Sequence["re.Pattern[str]"]
    handler: Handler

    def matches(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.patterns)


class KeywordExtractor:
    """
    Isolate the subject of a "when did I last ..." question.

    Stop phrases are removed everywhere in the text (longest first so that
    "是什么时候" goes before "是"), then leading verbs are peeled off as long
    as something remains after them.
    """

    def __init__(
        self,
        stop_phrases: Optional[Iterable[str]] = None,
        verb_prefixes: Optional[Iterable[str]] = None,
    ):
        phrases = list(stop_phrases) if stop_phrases else list(DEFAULT_STOP_PHRASES)
        self.stop_phrases = sorted(phrases, key=len, reverse=True)
        self.verb_prefixes = list(verb_prefixes) if verb_prefixes else list(DEFAULT_VERB_PREFIXES)

    def extract(self, text: str) -> str:
        keyword = text
        for phrase in self.stop_phrases:
            keyword = keyword.replace(phrase, "")
        keyword = keyword.strip()

        stripped = True
        while stripped:
            stripped = False
            for prefix in self.verb_prefixes:
                if keyword.startswith(prefix) and len(keyword) > len(prefix):
                    keyword = keyword[len(prefix):].strip()
                    stripped = True
                    break
        return keyword


def relative_day_phrase(days_ago: int) -> str:
    """今天 / 昨天 / N天前, or N天后 for dates in the future."""
    if days_ago == 0:
        return "今天"
    if days_ago == 1:
        return "昨天"
    if days_ago < 0:
        return f"{-days_ago}天后"
    return f"{days_ago}天前"


def _money(amount: Decimal) -> str:
    return f"¥{amount:.2f}"


class IntentEngine:
    """
    Ordered intent dispatcher.

    answer() never raises: a failing handler is logged and replaced with a
    generic apology.
    """

    def __init__(
        self,
        record_service,
        medication_service,
        keyword_extractor: Optional[KeywordExtractor] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._records = record_service
        self._medications = medication_service
        self._keywords = keyword_extractor or KeywordExtractor()
        self._clock = clock
        self.intents: List[Intent] = self._build_intents()
        self._by_name: Dict[str, Intent] = {intent.name: intent for intent in self.intents}

    def _build_intents(self) -> List[Intent]:
        def compile_all(*patterns: str) -> List["re.Pattern[str]"]:
            return [re.compile(p, re.IGNORECASE) for p in patterns]

        return [
            Intent("greeting", compile_all(r"^(你好|您好|嗨|哈喽|hi\b|hello\b)"), self._greeting),
            Intent("help", compile_all(r"帮助|你能做什么|你会什么|怎么用|^help"), self._help),
            Intent(
                "cost_summary",
                compile_all(r"花了?多少(钱)?|多少钱|费用|花费|开销|医药费"),
                self._cost_summary,
            ),
            Intent(
                "active_medications",
                compile_all(r"吃.*药|服药|用药|药物|在吃"),
                self._active_medications,
            ),
            Intent(
                "visit_count",
                compile_all(r"几次|多少次|次数|去过.*医院|看过几"),
                self._visit_count,
            ),
            Intent(
                "most_recent",
                compile_all(
                    r"最近(一次)?(的)?(就诊|看病|去医院)",
                    r"最新(的)?(一条)?记录",
                    r"上一?次(就诊|看病)",
                ),
                self._most_recent,
            ),
            Intent(
                "keyword_search",
                compile_all(r"什么时候|上次|上一次|最后一次|多久|哪天"),
                self._keyword_search,
            ),
        ]

    def match(self, text: str) -> Optional[Intent]:
        """First intent with a matching pattern, or None."""
        for intent in self.intents:
            if intent.matches(text):
                return intent
        return None

    async def answer(self, query: str) -> AssistantReply:
        text = (query or "").strip()
        intent = self.match(text)
        if intent is None:
            if FALLBACK_KEYWORD not in text:
                logger.info("No intent matched")
                return AssistantReply(intent="unknown", text=UNKNOWN_REPLY)
            intent = self._by_name["visit_count"]

        try:
            reply = await intent.handler(text)
        except Exception:
            logger.exception(f"Intent handler '{intent.name}' failed")
            return AssistantReply(intent=intent.name, text=ERROR_REPLY)

        logger.info(f"Answered with intent '{intent.name}'")
        return AssistantReply(intent=intent.name, text=reply)

    async def ask(self, query: str) -> str:
        return (await self.answer(query)).text

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _greeting(self, text: str) -> str:
        return GREETING_REPLY

    async def _help(self, text: str) -> str:
        return HELP_REPLY

    async def _cost_summary(self, text: str) -> str:
        records = self._records.get_all_records()
        total = sum((r.cost_total for r in records), ZERO)
        self_pay = sum((r.cost_self for r in records), ZERO)
        return (
            f"您共有 {len(records)} 条就诊记录，累计医疗总花费 {_money(total)}，"
            f"其中自费 {_money(self_pay)}。"
        )

    async def _active_medications(self, text: str) -> str:
        medications = self._medications.get_active_medications()
        if not medications:
            return NO_ACTIVE_MEDICATIONS_REPLY

        lines = [f"您目前有 {len(medications)} 个正在进行的服药计划："]
        for index, med in enumerate(medications, start=1):
            details = "，".join(part for part in (med.dosage, med.frequency) if part)
            days_left = self._medications.days_remaining(med)
            line = f"{index}. {med.name}"
            if details:
                line += f"（{details}）"
            lines.append(f"{line}，还剩 {days_left} 天")
        return "\n".join(lines)

    async def _visit_count(self, text: str) -> str:
        records = self._records.get_all_records()
        if not records:
            return NO_RECORDS_REPLY

        this_year = self._clock().year
        year_count = 0
        hospital_counts: Dict[str, int] = {}
        for record in records:
            visit_day = parse_calendar_date(record.date)
            if visit_day is not None and visit_day.year == this_year:
                year_count += 1
            if record.hospital:
                hospital_counts[record.hospital] = hospital_counts.get(record.hospital, 0) + 1

        # Ties go to the hospital seen first while scanning
        top_hospital, top_count = None, 0
        for hospital, count in hospital_counts.items():
            if count > top_count:
                top_hospital, top_count = hospital, count

        reply = f"您共有 {len(records)} 条就诊记录，今年就诊 {year_count} 次。"
        if top_hospital:
            reply += f"去得最多的医院是{top_hospital}（{top_count} 次）。"
        return reply

    async def _most_recent(self, text: str) -> str:
        records = self._records.get_all_records()
        if not records:
            return NO_RECORDS_REPLY
        return self._describe("您最近一次就诊", records[0])

    async def _keyword_search(self, text: str) -> str:
        keyword = self._keywords.extract(text)
        if not keyword:
            return EMPTY_KEYWORD_REPLY

        needle = keyword.casefold()
        matches = [
            record for record in self._records.get_all_records()
            if needle in json.dumps(record.to_dict(), ensure_ascii=False).casefold()
        ]
        if not matches:
            return f"没有找到与「{keyword}」相关的记录。"

        matches.sort(key=lambda r: (r.date, r.id or 0), reverse=True)
        latest = matches[0]
        visit_day = parse_calendar_date(latest.date)
        when = ""
        if visit_day is not None:
            when = relative_day_phrase((self._clock().date() - visit_day).days)
        return self._describe(f"与「{keyword}」相关的最近一次记录", latest, when)

    @staticmethod
    def _describe(prefix: str, record: VisitRecord, when: str = "") -> str:
        place = " ".join(part for part in (record.hospital, record.department) if part)
        date_part = f"{when}（{record.date[:10]}）" if when else record.date[:10]
        reply = f"{prefix}是在{date_part}"
        if place:
            reply += f"，{place}"
        if record.title:
            reply += f"：{record.title}"
        return f"{reply}。\n[查看详情](/records/{record.id})"
