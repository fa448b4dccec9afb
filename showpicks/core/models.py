"""Chat model construction for the configured provider."""
from langchain_core.language_models.chat_models import BaseChatModel

from showpicks.core.config import Settings, settings as default_settings
from showpicks.core.telemetry import get_telemetry

telemetry = get_telemetry('core.models')


def build_chat_model(settings: Settings = default_settings) -> BaseChatModel:
    """
    Returns a tool-calling chat model for settings.LLM_PROVIDER.
    The same instance is shared by every node and every run; the clients are
    stateless per call.
    """
    provider = settings.LLM_PROVIDER

    if provider == "groq":
        from langchain_groq import ChatGroq
        model = ChatGroq(
            model=settings.GROQ_MODEL,
            api_key=settings.GROQ_API_KEY,
            temperature=settings.MODEL_TEMPERATURE,
            max_tokens=settings.MODEL_MAX_TOKENS,
            timeout=settings.MODEL_TIMEOUT_S,
            max_retries=settings.MODEL_MAX_RETRIES,
        )
        model_name = settings.GROQ_MODEL
    elif provider == "gemini":
        # Lazy import: keeps the google client out of groq-only deployments
        from langchain_google_genai import ChatGoogleGenerativeAI
        model = ChatGoogleGenerativeAI(
            model=settings.GEMINI_MODEL,
            google_api_key=settings.GOOGLE_API_KEY,
            temperature=settings.MODEL_TEMPERATURE,
            max_output_tokens=settings.MODEL_MAX_TOKENS,
            timeout=settings.MODEL_TIMEOUT_S,
            max_retries=settings.MODEL_MAX_RETRIES,
        )
        model_name = settings.GEMINI_MODEL
    else:
        raise ValueError(f"unsupported LLM_PROVIDER: {provider}")

    telemetry.log_info("Chat model ready", provider=provider, model=model_name)
    return model
