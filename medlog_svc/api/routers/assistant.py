"""
Assistant router - questions about the user's own records.

/ask is answered by the built-in rule-based intent engine and always
returns 200. /ai-ask forwards the question and a summary of the records to
Gemini and needs GEMINI_API_KEY.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends

from schemas import AIAnswerResponse, AskRequest, AskResponse
from services import IntentEngine, RecordService
from services.gemini_service import GeminiService
from core.auth import verify_api_key
from core.dependencies import get_gemini_service, get_intent_engine, get_record_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/assistant",
    tags=["Assistant"],
    dependencies=[Depends(verify_api_key)],
)


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask about your records",
    description="Rule-based answers to questions such as 我一共花了多少钱, 我去了几次医院, "
                "我最近一次看病是什么时候 or 上次去看牙科是什么时候.",
)
async def ask(
    payload: AskRequest,
    intent_engine: IntentEngine = Depends(get_intent_engine),
):
    reply = await intent_engine.answer(payload.question)
    return AskResponse(intent=reply.intent, answer=reply.text)


@router.post(
    "/ai-ask",
    response_model=AIAnswerResponse,
    summary="Ask Gemini about your records",
    description="Free-form question answered by Gemini using only the stored records as context.",
)
async def ai_ask(
    payload: AskRequest,
    record_service: RecordService = Depends(get_record_service),
    gemini_service: GeminiService = Depends(get_gemini_service),
):
    """
    Raises:
    - 502 Bad Gateway: Gemini call failed (GeminiServiceError)
    - 503 Service Unavailable: GEMINI_API_KEY not configured
    """
    records = record_service.get_all_records()
    answer = await asyncio.to_thread(gemini_service.answer_question, records, payload.question)
    return AIAnswerResponse(answer=answer)
