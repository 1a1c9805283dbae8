"""
Pydantic models for the Clinical Trial Pre-Screening API
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional

class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts camelCase or snake_case input"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class CriteriaSet(BaseModel):
    """Eligibility criteria as returned by the LLM"""
    inclusion: List[str]
    exclusion: List[str]

class ExtractCriteriaResponse(CamelModel):
    success: bool = True
    file_name: str
    criteria: dict
    document_preview: str

class GenerateScriptRequest(CamelModel):
    inclusion: Optional[List[str]] = None
    exclusion: Optional[List[str]] = None
    study_name: Optional[str] = None

class GenerateScriptResponse(CamelModel):
    success: bool = True
    script: str

class CreateVoiceAgentRequest(CamelModel):
    script: Optional[str] = None
    study_name: Optional[str] = None

class CreateVoiceAgentResponse(CamelModel):
    success: bool = True
    agent_id: str
    agent_url: str
    message: str

class InitiateCallRequest(CamelModel):
    phone_number: Optional[str] = None
    agent_id: Optional[str] = None

class InitiateCallResponse(CamelModel):
    success: bool = True
    conversation_id: Optional[str] = None
    call_sid: Optional[str] = None
    message: str
