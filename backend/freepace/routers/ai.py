from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..ai_monitor import AICallMonitor
from ..gemini_client import GeminiClient, GeminiError, GeminiNotConfigured

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

UNAVAILABLE_ANSWER = "申し訳ありません。AI先生は現在利用できません。ヒントカードや先生に聞いてみましょう。"
FAILED_ANSWER = "ごめんなさい、今は答えられません。ヒントカードを見てみましょう！"
EMPTY_ANSWER = "考えるヒントを用意できませんでした。もう一度質問してみてください。"

DIFFICULTY_TEXT = {"easy": "やさしい", "hard": "難しい"}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AskRequest(_CamelModel):
    question: str = Field(min_length=1)
    card_title: Optional[str] = None
    context: Optional[str] = None


class AskResponse(BaseModel):
    answer: str


class GenerateProblemRequest(_CamelModel):
    card_title: str
    problem_description: Optional[str] = None
    example_problem: Optional[str] = None
    difficulty: Literal["easy", "normal", "hard"] = "normal"


class GeneratedProblem(BaseModel):
    problem: str
    answer: str = ""
    hint: str = ""
    explanation: str = ""


def get_ai_monitor(request: Request) -> Optional[AICallMonitor]:
    return getattr(request.app.state, "ai_monitor", None)


async def get_gemini_client(monitor: Optional[AICallMonitor] = Depends(get_ai_monitor)) -> AsyncIterator[Optional[GeminiClient]]:
    try:
        client = GeminiClient(monitor=monitor)
    except GeminiNotConfigured:
        yield None
        return
    try:
        yield client
    finally:
        await client.aclose()


def build_ask_prompt(req: AskRequest) -> str:
    return f"""あなたは小学生の学習を支援するAI先生です。ソクラテス対話の手法を使い、子どもが自分で考えられるように導いてください。

【学習カード情報】
タイトル: {req.card_title or ''}
問題: {req.context or ''}

【生徒の質問】
{req.question}

【回答のルール】
1. 答えを直接教えず、考えるヒントを出す
2. 小学生にわかりやすい言葉で
3. 励ましの言葉を入れる
4. 質問で返して考えを引き出す
5. 150文字以内で簡潔に

回答してください。"""


def build_problem_prompt(req: GenerateProblemRequest) -> str:
    level = DIFFICULTY_TEXT.get(req.difficulty, "標準的な")
    return f"""あなたは小学生向けの問題を作る先生です。
以下の学習カードの内容に基づいて、{level}レベルの類似問題を1つ作成してください。

【元の学習カード】
タイトル: {req.card_title}
問題: {req.problem_description or ''}
例題: {req.example_problem or ''}

以下のJSON形式で問題を出力してください：
{{
  "problem": "新しい問題文（数値や状況を変えて）",
  "answer": "正解",
  "hint": "ヒント（困ったときのアドバイス）",
  "explanation": "解き方の説明"
}}"""


@router.post("/ask", response_model=AskResponse)
async def ask(req: AskRequest, client: Optional[GeminiClient] = Depends(get_gemini_client)):
    if client is None:
        return AskResponse(answer=UNAVAILABLE_ANSWER)
    try:
        text = await client.generate(build_ask_prompt(req), temperature=0.7, max_output_tokens=200, endpoint="ask")
    except GeminiError as e:
        logger.error("AI error: %s", e)
        return AskResponse(answer=FAILED_ANSWER)
    return AskResponse(answer=text.strip() or EMPTY_ANSWER)


@router.post("/generate-problem", response_model=GeneratedProblem)
async def generate_problem(req: GenerateProblemRequest, client: Optional[GeminiClient] = Depends(get_gemini_client)):
    if client is None:
        return GeneratedProblem(problem="問題生成機能は現在利用できません。")
    try:
        data = await client.generate_json(
            build_problem_prompt(req), temperature=0.8, max_output_tokens=500, endpoint="generate-problem"
        )
    except GeminiError as e:
        logger.error("問題生成エラー: %s", e)
        return GeneratedProblem(problem="問題を生成できませんでした。", hint="先生に聞いてみましょう")
    problem = str(data.get("problem") or "").strip()
    if not problem:
        return GeneratedProblem(problem="問題を生成できませんでした。", hint="先生に聞いてみましょう")
    return GeneratedProblem(
        problem=problem,
        answer=str(data.get("answer") or ""),
        hint=str(data.get("hint") or ""),
        explanation=str(data.get("explanation") or ""),
    )


@router.get("/monitor")
def monitor(ai_monitor: Optional[AICallMonitor] = Depends(get_ai_monitor)) -> Dict[str, Any]:
    if ai_monitor is None:
        return {"summary": AICallMonitor().summary(), "calls": []}
    return {"summary": ai_monitor.summary(), "calls": ai_monitor.calls()}
