"""
Translation and commentary generation via the OpenAI chat completions API.

One call per step, no retries: a provider failure is terminal for the
request and the client may resubmit the whole operation.
"""
import logging
import os
from enum import Enum
from typing import Optional

from openai import APIConnectionError, APITimeoutError, OpenAI, OpenAIError

from app.core.errors import ConfigurationError, GenerationError, NetworkError

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
TRANSLATION_MODEL = os.getenv("TRANSLATION_MODEL", "gpt-4o-mini")
COMMENTARY_MODEL = os.getenv("COMMENTARY_MODEL", "gpt-4o")
GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))
TARGET_LANGUAGE = os.getenv("TARGET_LANGUAGE", "Simplified Chinese")


class CommentaryStyle(str, Enum):
    WARM_BOOKISH = "warmBookish"
    LIFE_REFLECTION = "lifeReflection"
    CONTRARIAN = "contrarian"
    EDUCATION = "education"
    SCIENCE = "science"


DEFAULT_STYLE = CommentaryStyle.WARM_BOOKISH

STYLE_VOICES = {
    CommentaryStyle.WARM_BOOKISH: (
        "Write like a warm, well-read essayist recommending a piece to a friend. "
        "Gentle pacing, literary references where they fit, no jargon."
    ),
    CommentaryStyle.LIFE_REFLECTION: (
        "Connect the article to everyday life. Draw out personal lessons and "
        "questions the reader might ask themselves."
    ),
    CommentaryStyle.CONTRARIAN: (
        "Take a critical stance. Question the article's assumptions, point out "
        "weak evidence, and present the strongest opposing view."
    ),
    CommentaryStyle.EDUCATION: (
        "Explain like a patient teacher. Define key terms, lay out the background "
        "step by step, and end with points to remember."
    ),
    CommentaryStyle.SCIENCE: (
        "Write as a science communicator. Focus on evidence, methods and "
        "uncertainty, and separate findings from speculation."
    ),
}

TRANSLATOR_PROMPT = """You are a professional multilingual translator.

Your task:
- Translate the provided content into {language}
- Preserve meaning, tone, and structure
- Keep paragraph breaks, headings, and quotes
- Do NOT summarize or add commentary
- Do NOT omit information

Output ONLY the translated text."""

ANALYST_PROMPT = """You are an expert analyst and editor writing for readers of {language}.

Your task:
- Analyze the translated article
- Explain why this article matters
- Add context the reader may not know
- Do NOT repeat the full article
- Write in {language}

Voice: {voice}

Structure your response using clear sections."""

COMMENTARY_REQUEST = """Based on the following translated article, provide:

1. A concise summary (3-5 bullet points)
2. Key takeaways
3. Context and interpretation (why it matters)
4. Any relevant background or implications

Translated article:
{text}"""


class GenerationService:
    def __init__(
        self,
        client: Optional[OpenAI] = None,
        translation_model: str = TRANSLATION_MODEL,
        commentary_model: str = COMMENTARY_MODEL,
        target_language: str = TARGET_LANGUAGE,
        timeout: float = GENERATION_TIMEOUT_SECONDS,
    ):
        self._client = client
        self.translation_model = translation_model
        self.commentary_model = commentary_model
        self.target_language = target_language
        self.timeout = timeout

    @property
    def client(self) -> OpenAI:
        # Built on first use so a missing key only fails requests that reach generation
        if self._client is None:
            if not OPENAI_API_KEY:
                raise ConfigurationError("Generation service not configured: OPENAI_API_KEY not set")
            self._client = OpenAI(api_key=OPENAI_API_KEY, timeout=self.timeout, max_retries=0)
        return self._client

    def translate(self, text: str) -> str:
        return self._complete(
            model=self.translation_model,
            system_prompt=TRANSLATOR_PROMPT.format(language=self.target_language),
            user_prompt=f"Translate the following content into {self.target_language}:\n\n{text}",
            max_tokens=4000,
            temperature=0.3,
        )

    def generate_commentary(self, translated_text: str, style: CommentaryStyle = DEFAULT_STYLE) -> str:
        """Commentary is written from the translated text only."""
        voice = STYLE_VOICES[CommentaryStyle(style)]
        return self._complete(
            model=self.commentary_model,
            system_prompt=ANALYST_PROMPT.format(language=self.target_language, voice=voice),
            user_prompt=COMMENTARY_REQUEST.format(text=translated_text),
            max_tokens=2000,
            temperature=0.7,
        )

    def _complete(self, model: str, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_completion_tokens=max_tokens,
                temperature=temperature,
            )
        except APITimeoutError as e:
            raise NetworkError(f"Generation request timed out after {self.timeout:.0f}s", original_exception=e) from e
        except APIConnectionError as e:
            raise NetworkError(f"Could not reach the generation service: {e}", original_exception=e) from e
        except OpenAIError as e:
            logger.error("OpenAI error (%s): %s", model, e)
            raise GenerationError(f"OpenAI API error: {e}", original_exception=e) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(f"OpenAI API returned an empty response ({model})")
        return content
