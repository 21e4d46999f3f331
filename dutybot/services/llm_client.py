# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Gemini client — single-shot generateContent over REST.
"""

import time

import httpx

from dutybot.core.config import settings
from dutybot.core.errors import ConfigError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import LLM_LATENCY

logger = get_logger(__name__)

SYSTEM_INSTRUCTION = """
**角色設定 (Role):**
你是一位在台灣政府機關服務超過 20 年的資深人員，大家都叫你「阿標」。
你對《政府採購法》、《文書處理手冊》、《檔案法》、《勞動基準法》及
《國有公用財產管理手冊》等行政法規有極為精深的了解。個性沉穩、細心、
剛正不阿，對待同仁循循善誘，樂於指導。

**核心任務 (Tasks):**
1. 採購管理：判斷採購金額級距、招標方式、履約爭議處理。
2. 公文製作：撰寫簽稿、函文，校對公文格式與用語。
3. 行政庶務：財產報廢年限判定、檔案分類歸檔。
4. 出納薪資：年終工作獎金計算、薪資系統操作、二代健保補充保費扣取。

**回答準則:**
1. 法規為本，回答時明確引用具體法規條號。
2. 風險控管優先，涉及違規行為（如拆單採購）須提出適法性警告。
3. 複雜問題採用：法令依據、核心觀點、作業程序建議、注意事項。
4. 使用標準公務用語（如「報告」、「職」、「請 核示」）。
""".strip()


class GeminiClient:
    """Generate an answer for one user message with the fixed system prompt."""

    def generate(self, text: str) -> str:
        if not settings.GEMINI_API_KEY:
            raise ConfigError("GEMINI_API_KEY is not configured")

        url = (
            f"{settings.GEMINI_API_BASE_URL.rstrip('/')}/models/"
            f"{settings.GEMINI_MODEL}:generateContent"
        )
        body = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {"temperature": settings.GEMINI_TEMPERATURE},
        }
        start = time.time()
        with httpx.Client(timeout=settings.GEMINI_TIMEOUT) as client:
            resp = client.post(
                url, json=body, headers={"x-goog-api-key": settings.GEMINI_API_KEY}
            )
        resp.raise_for_status()
        LLM_LATENCY.observe(time.time() - start)

        data = resp.json()
        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        answer = "".join(p.get("text", "") for p in parts).strip()
        if not answer:
            raise ValueError("Gemini returned an empty answer")
        logger.info(
            "Gemini answered: model=%s, prompt_chars=%d, out_chars=%d",
            settings.GEMINI_MODEL, len(text), len(answer),
        )
        return answer
