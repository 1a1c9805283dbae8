"""
Models package for the Clinical Trial Pre-Screening API
"""
from .schemas import (
    CriteriaSet,
    ExtractCriteriaResponse,
    GenerateScriptRequest,
    GenerateScriptResponse,
    CreateVoiceAgentRequest,
    CreateVoiceAgentResponse,
    InitiateCallRequest,
    InitiateCallResponse,
)

__all__ = [
    'CriteriaSet',
    'ExtractCriteriaResponse',
    'GenerateScriptRequest',
    'GenerateScriptResponse',
    'CreateVoiceAgentRequest',
    'CreateVoiceAgentResponse',
    'InitiateCallRequest',
    'InitiateCallResponse',
]
