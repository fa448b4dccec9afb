import os
import logging
from typing import List

from dotenv import load_dotenv

# loading envs from .env file
load_dotenv()

logger = logging.getLogger("core.config")

LLM_PROVIDERS = ("groq", "gemini")
SEARCH_PROVIDERS = ("duckduckgo", "tavily")
REFINEMENT_FALLBACKS = ("answer", "fail")
REFINE_ROUTES = ("agent", "search")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    def __init__(self):
        # chat model provider
        self.LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "groq").lower().strip()
        self.GROQ_API_KEY: str | None = os.getenv("GROQ_API_KEY")
        self.GROQ_MODEL: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
        self.GOOGLE_API_KEY: str | None = os.getenv("GOOGLE_API_KEY")
        self.GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0"))
        self.MODEL_MAX_TOKENS: int = int(os.getenv("MODEL_MAX_TOKENS", "2025"))
        self.MODEL_TIMEOUT_S: float = float(os.getenv("MODEL_TIMEOUT_S", "60"))
        self.MODEL_MAX_RETRIES: int = int(os.getenv("MODEL_MAX_RETRIES", "2"))

        # web search capability
        self.SEARCH_PROVIDER: str = os.getenv("SEARCH_PROVIDER", "duckduckgo").lower().strip()
        self.TAVILY_API_KEY: str | None = os.getenv("TAVILY_API_KEY")
        self.SEARCH_MAX_RESULTS: int = int(os.getenv("SEARCH_MAX_RESULTS", "5"))
        self.SEARCH_TIMEOUT_S: float = float(os.getenv("SEARCH_TIMEOUT_S", "10"))

        # indexed-content retriever (chroma)
        self.RETRIEVER_ENABLED: bool = _env_bool("RETRIEVER_ENABLED")
        self.CHROMA_DB_PATH: str = os.getenv("CHROMA_DB_PATH", "./chroma_db")
        self.CHROMA_COLLECTION_NAME: str = os.getenv("CHROMA_COLLECTION_NAME", "showpicks-catalog")
        self.RETRIEVER_TOP_K: int = int(os.getenv("RETRIEVER_TOP_K", "5"))

        # relevance loop policy (0-1 scale)
        self.RELEVANCE_THRESHOLD: float = float(os.getenv("RELEVANCE_THRESHOLD", "0.7"))
        self.MAX_REFINEMENTS: int = int(os.getenv("MAX_REFINEMENTS", "3"))
        self.REFINEMENT_FALLBACK: str = os.getenv("REFINEMENT_FALLBACK", "answer").lower().strip()
        self.REFINE_ROUTE: str = os.getenv("REFINE_ROUTE", "agent").lower().strip()

        # caller-side input bounds (the workflow itself imposes none)
        self.MIN_INPUT_CHARS: int = int(os.getenv("MIN_INPUT_CHARS", "10"))
        self.MAX_INPUT_CHARS: int = int(os.getenv("MAX_INPUT_CHARS", "500"))

        # langsmith config for tracing
        self.LANGCHAIN_TRACING_V2: bool = _env_bool("LANGCHAIN_TRACING_V2")
        self.LANGCHAIN_API_KEY: str = os.getenv("LANGCHAIN_API_KEY", os.getenv("LANGSMITH_API_KEY", ""))
        self.LANGCHAIN_PROJECT: str = os.getenv("LANGCHAIN_PROJECT", "showpicks")

        self._setup_langsmith()

    def validate(self) -> None:
        """Check the settings needed to build real clients.

        Called lazily by the service factory so importing the package never
        requires credentials.
        """
        missing: List[str] = []
        invalid: List[str] = []

        if self.LLM_PROVIDER not in LLM_PROVIDERS:
            invalid.append(f"LLM_PROVIDER={self.LLM_PROVIDER}")
        elif self.LLM_PROVIDER == "groq" and not self.GROQ_API_KEY:
            missing.append("GROQ_API_KEY")
        elif self.LLM_PROVIDER == "gemini" and not self.GOOGLE_API_KEY:
            missing.append("GOOGLE_API_KEY")

        if self.SEARCH_PROVIDER not in SEARCH_PROVIDERS:
            invalid.append(f"SEARCH_PROVIDER={self.SEARCH_PROVIDER}")
        elif self.SEARCH_PROVIDER == "tavily" and not self.TAVILY_API_KEY:
            missing.append("TAVILY_API_KEY")

        if self.REFINEMENT_FALLBACK not in REFINEMENT_FALLBACKS:
            invalid.append(f"REFINEMENT_FALLBACK={self.REFINEMENT_FALLBACK}")
        if self.REFINE_ROUTE not in REFINE_ROUTES:
            invalid.append(f"REFINE_ROUTE={self.REFINE_ROUTE}")
        if not 0.0 <= self.RELEVANCE_THRESHOLD <= 1.0:
            invalid.append(f"RELEVANCE_THRESHOLD={self.RELEVANCE_THRESHOLD}")
        if self.MAX_REFINEMENTS < 0:
            invalid.append(f"MAX_REFINEMENTS={self.MAX_REFINEMENTS}")

        if missing:
            raise ValueError(f"critical config error: missing environment variables: {', '.join(missing)}")
        if invalid:
            raise ValueError(f"critical config error: invalid values: {', '.join(invalid)}")

    def _setup_langsmith(self) -> None:
        """Setup LangSmith tracing if enabled."""
        if self.LANGCHAIN_TRACING_V2 and self.LANGCHAIN_API_KEY:
            os.environ["LANGCHAIN_TRACING_V2"] = "true"
            os.environ["LANGCHAIN_API_KEY"] = self.LANGCHAIN_API_KEY
            os.environ["LANGCHAIN_PROJECT"] = self.LANGCHAIN_PROJECT
            logger.info(f"LangSmith tracing enabled - Project: {self.LANGCHAIN_PROJECT}")
        else:
            logger.debug("LangSmith tracing disabled (set LANGCHAIN_TRACING_V2=true to enable)")

# initializing the settings object
settings = Settings()
