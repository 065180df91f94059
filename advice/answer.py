import logging
import os
from typing import Dict, List

from openai import APIConnectionError, APITimeoutError, OpenAI, OpenAIError, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from planner.formatting import format_vnd

logger = logging.getLogger(__name__)

ADVICE_MODEL = os.getenv("HOMEPLAN_ADVICE_MODEL", "gpt-4o-mini")


def scenario_facts(result) -> List[str]:
    """Numbered fact lines the narration is allowed to use."""
    m = result.metrics
    facts = [
        f"Kịch bản: {result.scenario.name} ({result.scenario.type}) - {result.scenario.description}",
        f"Trả góp hàng tháng: {format_vnd(m.monthly_payment)}",
        f"Tổng lãi: {format_vnd(m.total_interest)}",
        f"Số tháng trả nợ: {m.payoff_month}",
        f"Tỷ lệ nợ/thu nhập: {m.debt_to_income_ratio:.1f}%",
        f"Điểm khả năng chi trả: {m.affordability_score}/10",
    ]
    if m.roi is not None:
        facts.append(f"ROI: {m.roi:g}%")
    c = result.comparison_to_baseline
    if c is not None:
        facts.append(f"Chênh lệch trả góp so với kịch bản gốc: {format_vnd(c.monthly_savings)}")
        facts.append(f"Chênh lệch tổng lãi so với kịch bản gốc: {format_vnd(c.total_interest_difference)}")
    facts += [f"Nhận định: {s}" for s in result.key_insights]
    facts += [f"Rủi ro: {s}" for s in result.risk_factors]
    facts += [f"Cơ hội: {s}" for s in result.opportunities]
    return facts


@retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.7, min=1, max=6),
    retry=retry_if_exception_type((APIConnectionError, APITimeoutError, RateLimitError)),
)
def _complete(client: OpenAI, prompt: str) -> str:
    resp = client.chat.completions.create(
        model=ADVICE_MODEL,
        messages=[{"role": "user", "content": prompt}],
        temperature=0.2,
    )
    return resp.choices[0].message.content or ""


def synthesize_advice(result) -> Dict:
    """
    If OPENAI_API_KEY is set, ask the model for short Vietnamese advice using ONLY the computed facts.
    Else, return the facts as an extractive bulleted summary.
    """
    facts = scenario_facts(result)

    if os.getenv("OPENAI_API_KEY"):
        context = "\n".join(f"[{i}] {f}" for i, f in enumerate(facts, 1))
        prompt = f"""Bạn là trợ lý lập kế hoạch vay mua nhà tại Việt Nam. Chỉ dùng các dữ kiện đánh số dưới đây.
Trả lời ngắn gọn bằng tiếng Việt, dạng gạch đầu dòng, kèm trích dẫn như [1], [2].
Không tự thêm số liệu mới.

Dữ kiện:
{context}
"""
        try:
            answer_md = _complete(OpenAI(), prompt)
            if answer_md.strip():
                return {"answer_markdown": answer_md, "facts": facts, "source": "llm"}
        except OpenAIError as e:
            logger.warning("advice model unavailable, using extractive summary: %s", e)

    bullets = [f"- {f}" for f in facts]
    answer_md = "**Tóm tắt kịch bản:**\n" + "\n".join(bullets)
    return {"answer_markdown": answer_md, "facts": facts, "source": "extractive"}
