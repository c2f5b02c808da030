import asyncio
import logging
import os
import random
from typing import Optional

from google import genai
from google.genai import types
from dotenv import load_dotenv

# Load environment variables (API Key)
load_dotenv()

logger = logging.getLogger(__name__)

MODEL = 'gemini-2.5-flash-lite'

QUOTES = [
    "The secret of getting ahead is getting started.",
    "Your only limit is you.",
    "Don't stop when you're tired. Stop when you're done.",
    "The harder you work for something, the greater you'll feel when you achieve it.",
    "Push yourself, because no one else is going to do it for you.",
    "Great things never come from comfort zones.",
]


class AIService:
    """
    Motivation quotes for the dashboard.
    Uses Google Gemini when GEMINI_API_KEY is set, otherwise a fixed quote list.
    """

    def __init__(self, client=None):
        if client is not None:
            self.client = client
            return
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            logger.warning("GEMINI_API_KEY not found in environment variables.")
            self.client = None
        else:
            self.client = genai.Client(api_key=api_key)

    @staticmethod
    def fallback_quote() -> str:
        return random.choice(QUOTES)

    async def generate_motivation(self, focus: Optional[str] = None) -> str:
        """
        Generates a short motivational quote, optionally tailored to what the user is working on.
        """
        if not self.client:
            return self.fallback_quote()

        prompt = (
            "Generate a single, short, punchy motivational quote for someone levelling up their life "
            "by completing daily quests and long-term missions. \n"
            + (f"They are currently working on: '{focus}'. \n" if focus else "")
            + "Do not be cheesy. Maximum 15 words. \n"
            "Format: Just the quote text."
        )

        try:
            # Run the synchronous API call in a separate thread to avoid blocking the server
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=MODEL,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=1.0,
                    max_output_tokens=30
                )
            )
            text = (response.text or "").strip().replace('"', '')
            return text or self.fallback_quote()
        except Exception as e:
            logger.error("AI quote error: %s", e)
            return self.fallback_quote()


# Singleton instance
ai_service = AIService()
