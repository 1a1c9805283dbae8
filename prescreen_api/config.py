"""
Configuration settings for the Clinical Trial Pre-Screening API
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class Settings:
    # Google Gemini API
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # ElevenLabs Conversational AI
    ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
    ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io")
    ELEVENLABS_AGENT_LLM = os.getenv("ELEVENLABS_AGENT_LLM", "gemini-2.5-flash")
    ELEVENLABS_TIMEOUT = float(os.getenv("ELEVENLABS_TIMEOUT", "30"))

    # Destination numbers without a leading '+' are assumed to be in this country
    DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "+1")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # PDF text-layer scan
    PDF_BATCH_SIZE = 10
    PDF_MAX_PAGES = 50
    PDF_OVERSCAN_BATCHES = 2

    # Extraction floors
    MIN_TEXT_LAYER_CHARS = 500
    MIN_DOCUMENT_CHARS = 100

    # Vision fallback
    VISION_MAX_PAGES = 8
    VISION_DEFAULT_PAGES = 5
    VISION_DPI = 150

    PREVIEW_CHARS = 500

settings = Settings()
