"""
Service for reading medical documents and answering questions using Google Gemini AI.

Three capabilities:
- extract_text: plain OCR of one image (used by the attachment OCR flow)
- extract_visit_record: structured visit fields from one or more page images
- answer_question: free-text answer grounded only in a compact record context

Responses are treated as untrusted: JSON is cut out of whatever the model
returns and parsed; failures raise GeminiServiceError. There is no retry.
"""
import io
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from PIL import Image

from core.config import settings
from core.exceptions import GeminiServiceError
from models.record import VisitRecord

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("挂号单", "病历", "检验报告", "处方", "收据/缴费单", "其他")

OCR_PROMPT = """
Transcribe all text visible in this image exactly as printed.
The document is a Chinese medical document (receipt, prescription, case note or lab report).
- Keep the original line breaks; one printed line per output line.
- Keep numbers, units and symbols exactly as shown.
- Output the text only, with no commentary, markdown or translation.
""".strip()

VISIT_PROMPT = """
你是一个专业的医疗数据结构化专家。这些是同一份就诊单据的图片（可能有多页）。
请分析图片内容，判断单据类型，并提取关键结构化信息。
请返回严格的 JSON 对象，不要包含 Markdown 格式或任何解释。

字段（不存在的信息返回 null）：
- type: 单据类型，取值之一：挂号单、病历、检验报告、处方、收据/缴费单、其他
- date: 日期，格式 YYYY-MM-DD
- hospital: 医院名称
- department: 科室
- doctor: 医生姓名
- diagnosis: 临床诊断、主诉或检查结论
- cost: 总金额（数字）
- medications: 药品或收费项目数组，每项包含 name、dosage（处方用法用量）、quantity、price（收据单价）
- inspection_headers: 检验表格表头数组，尽量保持原单据表头
- inspections: 检验指标数组，对象的键名必须与 inspection_headers 一致

注意：有“用法/频次”的是处方；全是“金额”的是收据。多页内容请合并，不要重复。
""".strip()

QA_PROMPT = """
你是一个私人医疗健康助手。请根据以下【就诊记录】回答用户的问题。

【就诊记录】:
{context}

【用户问题】: {question}

要求：
1. 仅根据提供的数据回答，不要编造信息。
2. 如果记录中找不到答案，请直接说“记录中没有相关信息”。
3. 用中文回答，语气亲切专业。
4. 如果涉及时间，请按时间倒序梳理。
""".strip()


def _extract_json_object(text: str) -> Dict[str, Any]:
    """Cut the outermost {...} out of a model response and parse it."""
    start_index = text.find("{")
    end_index = text.rfind("}")
    if start_index == -1 or end_index == -1:
        raise GeminiServiceError("Could not find a JSON object in the Gemini response")
    try:
        data = json.loads(text[start_index:end_index + 1])
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse Gemini response as JSON: {text[:200]}")
        raise GeminiServiceError(f"Invalid JSON response from Gemini: {e}") from e
    if not isinstance(data, dict):
        raise GeminiServiceError("Gemini response is not a JSON object")
    return data


def build_record_context(records: Sequence[VisitRecord]) -> str:
    """One short block per record with only the fields the assistant needs."""
    blocks = []
    for record in records:
        blocks.append("\n".join([
            f"- index: {record.id}",
            f"- date: {record.date}",
            f"- hospital: {record.hospital or 'Unknown'}",
            f"- dept: {record.department or 'Unknown'}",
            f"- type: {record.visit_type or 'Unknown'}",
            f"- diagnosis: {record.diagnosis or 'None'}",
            f"- cost_total: {record.cost_total}",
        ]))
    return "\n".join(blocks)


class GeminiService:
    """Client for Gemini vision and text requests."""

    def __init__(self, api_key: Optional[str] = None, model_name: str = "gemini-flash-latest"):
        """
        Initialize the Gemini service.

        Args:
            api_key: Google Gemini API key. If not provided, loads from settings.
            model_name: Gemini model used for all requests.

        Raises:
            ValueError: If API key is not provided.
        """
        self.api_key = api_key or settings.gemini_api_key
        if not self.api_key:
            raise ValueError(
                "GEMINI_API_KEY environment variable is required. "
                "Set it or pass api_key parameter."
            )

        genai.configure(api_key=self.api_key)
        self.model = genai.GenerativeModel(model_name)

    @staticmethod
    def _open_image(data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            return image
        except Exception as e:
            raise GeminiServiceError(f"Unreadable image: {e}") from e

    def _generate(self, parts: List[Any]) -> str:
        try:
            response = self.model.generate_content(parts)
            return response.text.strip()
        except Exception as e:
            logger.error(f"Gemini request failed: {e}", exc_info=True)
            raise GeminiServiceError(f"Gemini request failed: {e}") from e

    def extract_text(self, image_data: bytes) -> str:
        """OCR a single image and return its text."""
        image = self._open_image(image_data)
        text = self._generate([OCR_PROMPT, image])
        logger.info(f"Gemini OCR returned {len(text)} characters")
        return text

    def extract_visit_record(self, images: Sequence[bytes]) -> Dict[str, Any]:
        """
        Extract structured visit fields from one or more page images.

        Returns:
            dict: Keys type, date, hospital, department, doctor, diagnosis,
                cost, medications, inspection_headers, inspections. Missing
                keys are filled with None or an empty list.
        """
        if not images:
            raise GeminiServiceError("At least one image is required")

        parts: List[Any] = [self._open_image(data) for data in images]
        parts.append(VISIT_PROMPT)
        data = _extract_json_object(self._generate(parts))

        result = {
            key: data.get(key)
            for key in ("type", "date", "hospital", "department", "doctor", "diagnosis", "cost")
        }
        for key in ("medications", "inspection_headers", "inspections"):
            value = data.get(key)
            result[key] = value if isinstance(value, list) else []
        if result["type"] not in DOCUMENT_TYPES:
            result["type"] = "其他" if result["type"] else None

        logger.info(f"Extracted visit fields from {len(images)} image(s)")
        return result

    def answer_question(self, records: Sequence[VisitRecord], question: str) -> str:
        """Answer a question using only the given records as context."""
        prompt = QA_PROMPT.format(context=build_record_context(records), question=question)
        return self._generate([prompt])
