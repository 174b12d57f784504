"""광고 콘텐츠 분석 -- OpenAI 호환 Chat API.

광고 유형별 프롬프트로 JSON 인사이트를 받는다. 실패해도 예외를 올리지 않고
{"raw_analysis": ...} 형태의 대체값을 돌려준다 (신규 광고 저장이 막히지 않도록).

Env:
    AI_ANALYSIS_API_KEY   -- 미설정 시 분석 생략 (실패 sentinel 저장)
    AI_ANALYSIS_MODEL     -- default: gpt-4o-mini
    AI_ANALYSIS_BASE_URL  -- OpenAI 호환 엔드포인트 (선택)
    AI_ANALYSIS_TIMEOUT   -- 초, default: 30
"""

from __future__ import annotations

import json
import os

from loguru import logger
from openai import AsyncOpenAI

ANALYSIS_FAILED = {"raw_analysis": "Analysis failed"}

_API_KEY = os.getenv("AI_ANALYSIS_API_KEY", "")
_MODEL = os.getenv("AI_ANALYSIS_MODEL", "gpt-4o-mini")
_BASE_URL = os.getenv("AI_ANALYSIS_BASE_URL") or None
_TIMEOUT = float(os.getenv("AI_ANALYSIS_TIMEOUT", "30"))

SYSTEM_PROMPT = "You are a digital advertising analyst. Always answer with a single JSON object."

_PROMPTS = {
    "image": (
        'Analyze this image ad with the following content: "{content}".\n'
        "Provide insights on:\n"
        "1. What is being shown\n"
        "2. The emotion/theme\n"
        "3. Target audience\n"
        "4. Product/service being promoted\n"
        "Format the response as JSON with these fields: emotion, target_audience, product, strategy"
    ),
    "video": (
        'Analyze this video ad with the following content: "{content}".\n'
        "Provide insights on:\n"
        "1. What is being promoted\n"
        "2. Tone and branding\n"
        "3. Any offers/calls-to-action\n"
        "Format the response as JSON with these fields: promotion, tone, call_to_action, strategy"
    ),
    "text": (
        'Analyze this text ad: "{content}".\n'
        "Provide insights on:\n"
        "1. The key message\n"
        "2. Target audience\n"
        "3. Call to action\n"
        "Format the response as JSON with these fields: message, target_audience, call_to_action, strategy"
    ),
}


def build_prompt(content: str, kind: str) -> str:
    template = _PROMPTS.get(kind, _PROMPTS["text"])
    return template.format(content=content.replace('"', "'"))


def parse_analysis(text: str | None) -> dict:
    """모델 응답 → dict. 코드블록/앞뒤 설명문 허용, 파싱 불가 시 raw_analysis."""
    if not text:
        return dict(ANALYSIS_FAILED)
    body = text.strip()
    if body.startswith("```"):
        body = "\n".join(l for l in body.split("\n") if not l.startswith("```")).strip()
    start = body.find("{")
    end = body.rfind("}") + 1
    if start >= 0 and end > start:
        body = body[start:end]
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return {"raw_analysis": text}
    if not isinstance(parsed, dict):
        return {"raw_analysis": text}
    return parsed


class AdAnalyzer:
    """analyze(content, kind) -> dict. 절대 예외를 올리지 않는다."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None):
        if client is None and _API_KEY:
            client = AsyncOpenAI(api_key=_API_KEY, base_url=_BASE_URL, timeout=_TIMEOUT)
        self.client = client
        self.model = model or _MODEL

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def analyze(self, content: str, kind: str) -> dict:
        if self.client is None:
            return dict(ANALYSIS_FAILED)
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(content, kind)},
                ],
                temperature=0.2,
                max_tokens=500,
            )
            text = resp.choices[0].message.content or ""
        except Exception as exc:
            logger.warning("[ad-analyzer] analysis call failed: {}", str(exc)[:200])
            return dict(ANALYSIS_FAILED)
        return parse_analysis(text)

    async def close(self):
        if self.client is not None:
            await self.client.close()


_default_analyzer: AdAnalyzer | None = None


def get_analyzer() -> AdAnalyzer:
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = AdAnalyzer()
        if not _default_analyzer.enabled:
            logger.warning("[ad-analyzer] AI_ANALYSIS_API_KEY not set, new ads get the failure sentinel")
    return _default_analyzer


async def analyze(content: str, kind: str) -> dict:
    return await get_analyzer().analyze(content, kind)


async def close_analyzer():
    """프로세스 종료 시 기본 분석기의 HTTP 클라이언트 정리."""
    global _default_analyzer
    if _default_analyzer is not None:
        await _default_analyzer.close()
        _default_analyzer = None
