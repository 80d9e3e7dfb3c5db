import asyncio
import logging

from openai import AsyncOpenAI

from core import config
from app.interview.errors import CollaboratorUnavailable
from app.interview.evaluator import extract_json_dict, normalize_evaluation
from app.interview.models import Evaluation
from app.interview.plan import Question
from app.interview.prompts import build_evaluation_messages

logger = logging.getLogger("app.services.openai_service")

_client: AsyncOpenAI | None = None


def get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=config.OPENAI_API_KEY)
    return _client


class OpenAIChatClient:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        timeout_sec: float | None = None,
        retries: int | None = None,
    ):
        self._client = client
        self.model = model or config.CHAT_MODEL
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else config.LLM_TIMEOUT_SEC)
        self.retries = int(retries if retries is not None else config.LLM_RETRIES)

    @property
    def client(self) -> AsyncOpenAI:
        return self._client or get_client()

    async def _create(self, messages: list[dict], temperature: float, max_tokens: int, json_mode: bool) -> str:
        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await asyncio.wait_for(
            self.client.chat.completions.create(**kwargs),
            timeout=self.timeout_sec,
        )
        return str(response.choices[0].message.content or "").strip()

    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int = 300,
        json_mode: bool = False,
        collaborator: str = "chat",
    ) -> str:
        """
        Chat completion with timeout and linear backoff.
        Raises CollaboratorUnavailable once retries are exhausted or the reply is empty.
        """
        last_error: Exception | None = None
        for attempt in range(max(1, self.retries + 1)):
            try:
                text = await self._create(messages, temperature, max_tokens, json_mode)
                if text:
                    return text
                last_error = ValueError("empty completion")
                logger.warning("%s completion empty | attempt=%s", collaborator, attempt + 1)
            except asyncio.TimeoutError as exc:
                last_error = exc
                logger.warning("%s completion timeout | attempt=%s", collaborator, attempt + 1)
            except Exception as exc:
                last_error = exc
                logger.warning("%s completion failure | attempt=%s err=%s", collaborator, attempt + 1, exc)

            if attempt < self.retries:
                await asyncio.sleep(0.35 * (attempt + 1))

        raise CollaboratorUnavailable(collaborator, f"{collaborator} service unavailable: {last_error}")


class OpenAIAnswerEvaluator:
    def __init__(self, chat: OpenAIChatClient | None = None):
        self.chat = chat or OpenAIChatClient(model=config.EVALUATOR_MODEL)

    async def evaluate(self, question: Question, answer_text: str) -> Evaluation:
        raw = await self.chat.complete(
            build_evaluation_messages(question, answer_text),
            temperature=0.3,
            max_tokens=500,
            json_mode=True,
            collaborator="evaluator",
        )
        evaluation = normalize_evaluation(extract_json_dict(raw))
        if evaluation is None:
            logger.warning("evaluator returned unparseable payload | question_id=%s", question.id)
            raise CollaboratorUnavailable("evaluator", "Evaluator returned no usable score")
        return evaluation
