from app.core.config import get_settings
from app.core.deps import get_llm_client


class AIService:
    """Thin chat-completion wrapper around whichever provider client is configured."""

    def __init__(self, client=None, model: str | None = None):
        settings = get_settings()
        self.client = client if client is not None else get_llm_client(settings)
        if model is None:
            model = settings.gemini_model if settings.llm_provider == "gemini" else settings.openai_model
        self.model = model

    def generate_completion(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 512,
        json_mode: bool = False,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        extra = {}
        if json_mode:
            extra["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **extra,
        )

        return response.choices[0].message.content or ""


def get_ai_service() -> AIService:
    return AIService()
