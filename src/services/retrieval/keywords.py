# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Search-term extraction for the lexical channel.

Providers (tried in order by ChainedTermExtractor, first non-empty wins):
- LLMTermExtractor: chat model through an OpenAI-compatible endpoint (OpenRouter)
- BaiduTermExtractor: Baidu NLP keyword API (when BAIDU_API_KEY/BAIDU_SECRET_KEY are set)
- LocalTermExtractor: deterministic heuristic, always available
"""

import os
import re

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.config.logging_config import setup_logger
from src.config.settings import config
from src.services.protocols import TermExtractor
from src.utils.retry import retry_async

logger = setup_logger(__name__)

# Longer "terms" are sentences the model echoed back, not search terms
MAX_TERM_LENGTH = 20

_TERM_SPLIT_RE = re.compile(r"[,，、\n]")

KEYWORD_SYSTEM_PROMPT = """You extract search keywords for a document retrieval system.

Rules:
1. Return at most {max_terms} keywords, most important first.
2. Include both kinds of keywords:
   - Direct keywords: important words that literally appear in the text
   - Implied keywords: closely related concepts a matching passage is likely to contain
     (e.g. "tomorrow" implies schedule, date; "arrange" implies meeting, task, plan)
3. Prefer specific, searchable words. Never return stop words (the, is, of, 的, 是, 在).
4. Keep each keyword in the language of the text.
5. Output ONLY the keywords separated by commas, no numbering, no explanation.

Example:
Input: "What do I have scheduled tomorrow"
Output: tomorrow,schedule,meeting,task,plan,appointment"""


def parse_term_list(text: str, max_terms: int) -> list[str]:
    """Split a comma / 、 separated model reply into clean terms."""
    terms: list[str] = []
    seen: set[str] = set()
    for raw in _TERM_SPLIT_RE.split(text or ""):
        term = raw.strip().strip("\"'“”‘’").strip()
        if not term or len(term) > MAX_TERM_LENGTH or term.lower() in seen:
            continue
        seen.add(term.lower())
        terms.append(term)
        if len(terms) >= max_terms:
            break
    return terms


class LLMTermExtractor:
    """Keywords (direct and implied) from a chat model."""

    def __init__(self, llm: ChatOpenAI | None = None, model: str | None = None):
        if llm is None:
            api_key = os.getenv("OPENROUTER_API_KEY")
            if not api_key:
                raise ValueError("OPENROUTER_API_KEY required for LLM keyword extraction")
            llm = ChatOpenAI(
                model=model or config.KEYWORD_MODEL,
                temperature=0.2,
                max_tokens=150,
                api_key=api_key,
                base_url=config.OPENROUTER_BASE_URL,
            )
        self.llm = llm

    async def extract(self, text: str, max_terms: int) -> list[str]:
        if not text or not text.strip():
            return []
        messages = [
            SystemMessage(content=KEYWORD_SYSTEM_PROMPT.format(max_terms=max_terms)),
            HumanMessage(content=f'Extract keywords from:\n\n"{text.strip()}"'),
        ]
        response = await retry_async(lambda: self.llm.ainvoke(messages), retries=2)
        terms = parse_term_list(str(response.content or ""), max_terms)
        logger.info("LLM keywords: %s", terms)
        return terms


BAIDU_TOKEN_URL = "https://aip.baidubce.com/oauth/2.0/token"
BAIDU_KEYWORD_URL = "https://aip.baidubce.com/rpc/2.0/nlp/v1/keyword"


class BaiduTermExtractor:
    """Baidu NLP keyword API (client-credential OAuth token, then the keyword endpoint)."""

    def __init__(
        self,
        api_key: str | None = None,
        secret_key: str | None = None,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or os.getenv("BAIDU_API_KEY")
        self.secret_key = secret_key or os.getenv("BAIDU_SECRET_KEY")
        if not self.api_key or not self.secret_key:
            raise ValueError("BAIDU_API_KEY and BAIDU_SECRET_KEY required")
        self.timeout = timeout
        self.transport = transport

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        resp = await client.post(
            BAIDU_TOKEN_URL,
            params={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.secret_key,
            },
        )
        resp.raise_for_status()
        token = resp.json().get("access_token")
        if not token:
            raise ValueError("Baidu token response carried no access_token")
        return token

    async def extract(self, text: str, max_terms: int) -> list[str]:
        if not text or not text.strip():
            return []
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, transport=self.transport) as client:
            token = await self._access_token(client)
            resp = await client.post(
                BAIDU_KEYWORD_URL,
                params={"access_token": token},
                json={"text": text.strip(), "num": max_terms},
            )
            resp.raise_for_status()
            data = resp.json()

        if "error_code" in data:
            raise ValueError(f"Baidu keyword API error {data.get('error_code')}: {data.get('error_msg', '')}")

        results = sorted(data.get("results") or [], key=lambda item: item.get("score", 0), reverse=True)
        terms = [str(item.get("word", "")).strip() for item in results[:max_terms]]
        terms = [t for t in terms if t]
        logger.info("Baidu keywords: %s", terms)
        return terms


_LOCAL_PUNCTUATION_RE = re.compile(r"[，。！？；：“”‘’（）【】《》、.,!?;:\"'()\[\]<>]")
_CJK_RUN_RE = re.compile(r"[一-龥]{2,4}")
_NUMBER_RE = re.compile(r"^\d+$")

STOP_WORDS = frozenset(
    {
        # Chinese
        "的", "了", "在", "是", "我", "有", "和", "就", "不", "人", "都", "一", "一个", "上", "也", "很",
        "到", "说", "要", "去", "你", "会", "着", "没有", "看", "好", "自己", "这", "那", "什么", "可以",
        "这个", "那个", "他", "她", "它", "我们", "你们", "他们", "她们", "它们", "这些", "那些", "怎么",
        "为什么", "哪里", "什么时候", "如何", "多少", "哪个", "哪些",
        # English
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "did", "do", "does", "for", "from", "how",
        "in", "is", "it", "me", "my", "of", "on", "or", "that", "the", "this", "to", "was", "what", "when",
        "where", "which", "who", "why", "with", "you", "your",
    }
)  # fmt: skip


class LocalTermExtractor:
    """Deterministic fallback: whitespace tokens plus 2-4 character CJK runs, minus stop words."""

    async def extract(self, text: str, max_terms: int) -> list[str]:
        return self.extract_sync(text, max_terms)

    @staticmethod
    def extract_sync(text: str, max_terms: int) -> list[str]:
        if not text or not text.strip():
            return []
        cleaned = " ".join(_LOCAL_PUNCTUATION_RE.sub(" ", text).split())
        candidates = cleaned.split() + _CJK_RUN_RE.findall(cleaned)

        terms: list[str] = []
        seen: set[str] = set()
        for word in candidates:
            key = word.lower()
            if key in seen or key in STOP_WORDS or len(word) < 2 or _NUMBER_RE.match(word):
                continue
            seen.add(key)
            terms.append(word)
            if len(terms) >= max_terms:
                break
        return terms


class ChainedTermExtractor:
    """
    Try each provider in order; the first non-empty result wins.

    Provider failures are logged and absorbed: the chain itself never raises
    and returns [] when every provider comes back empty.
    """

    def __init__(self, providers: list[TermExtractor], max_terms: int | None = None):
        self.providers = list(providers)
        self.max_terms = max_terms or config.KEYWORD_MAX_TERMS

    async def extract(self, text: str, max_terms: int | None = None) -> list[str]:
        max_terms = max_terms or self.max_terms
        for provider in self.providers:
            name = type(provider).__name__
            try:
                terms = await provider.extract(text, max_terms)
            except Exception as e:
                logger.warning("Keyword provider %s failed (%s): %s", name, type(e).__name__, e)
                continue
            if terms:
                return terms[:max_terms]
            logger.info("Keyword provider %s returned no terms", name)
        logger.warning("No keywords extracted; lexical channel will use the raw query")
        return []


def build_term_extractor() -> ChainedTermExtractor:
    """Provider chain from configuration: LLM, Baidu, then the local heuristic."""
    providers: list[TermExtractor] = []
    if config.KEYWORD_LLM_ENABLED and os.getenv("OPENROUTER_API_KEY"):
        providers.append(LLMTermExtractor())
    if os.getenv("BAIDU_API_KEY") and os.getenv("BAIDU_SECRET_KEY"):
        providers.append(BaiduTermExtractor())
    if config.KEYWORD_LOCAL_FALLBACK or not providers:
        providers.append(LocalTermExtractor())
    logger.info("Keyword providers: %s", [type(p).__name__ for p in providers])
    return ChainedTermExtractor(providers)
