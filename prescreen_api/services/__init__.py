"""
Services package for the Clinical Trial Pre-Screening API
"""
from .gemini_service import GeminiService
from .document_service import DocumentService, DocumentError, PDFProcessingError
from .voice_agent_service import VoiceAgentService, VoiceAgentError, normalize_phone_number

__all__ = [
    'GeminiService',
    'DocumentService',
    'DocumentError',
    'PDFProcessingError',
    'VoiceAgentService',
    'VoiceAgentError',
    'normalize_phone_number',
]
