"""
Gemini service for eligibility criteria extraction, pre-screening script
generation and page transcription
"""
import json
from typing import List, Optional
from google import genai
from google.genai import types
from google.genai.types import GenerateContentConfig
import logging

from prescreen_api.models.schemas import CriteriaSet

logger = logging.getLogger(__name__)

class GeminiService:
    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash"):
        self.api_key = api_key
        self.model = model
        self._client = None

        # System prompt for criteria extraction
        self.criteria_prompt = """You are an expert at analyzing clinical trial protocols and extracting eligibility criteria.

Your task is to carefully read the document and identify ALL inclusion and exclusion criteria. These may be labeled as:
- "Inclusion Criteria" or "Eligibility Criteria" or "Patient Selection Criteria"
- "Exclusion Criteria" or "Exclusionary Criteria"

Look for sections that describe:
- Who CAN participate (inclusion)
- Who CANNOT participate (exclusion)
- Patient requirements, age ranges, diagnoses, medical conditions, prior treatments, etc.

Return your response as a JSON object with this exact format:
{
  "inclusion": ["criterion 1", "criterion 2", ...],
  "exclusion": ["criterion 1", "criterion 2", ...]
}

Each criterion should be a complete, standalone statement. Extract ALL criteria you find, even if there are many. If a section truly has no criteria, use an empty array."""

        # System prompt for script generation
        self.script_system_prompt = """You are a clinical research expert who creates system prompts for AI voice agents.
Create structured prompts with clear sections (Personality, Environment, Goal, Questions, Guardrails, Response Logic) that ensure the agent follows the exact screening questions in order.
Use markdown formatting and simple language."""

        self.transcription_prompt = """Extract ALL the text from these document pages.
Return ONLY the raw text content, maintaining the original structure.
Do not summarize, translate or add commentary."""

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def extract_criteria(self, document_text: str) -> dict:
        """Ask Gemini for inclusion/exclusion criteria - returns the parsed JSON unmodified"""
        user_prompt = f"""Please analyze this clinical trial document and extract ALL inclusion and exclusion criteria:

{document_text}"""

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[user_prompt],
            config=GenerateContentConfig(
                system_instruction=[self.criteria_prompt],
                response_mime_type="application/json",
                response_schema=CriteriaSet,
                temperature=0.2,
            )
        )

        criteria = json.loads(response.text or "{}")
        logger.info(
            f"Extracted {len(criteria.get('inclusion', []))} inclusion and "
            f"{len(criteria.get('exclusion', []))} exclusion criteria"
        )
        return criteria

    def build_script_prompt(self, inclusion: List[str], exclusion: List[str], study_name: Optional[str]) -> str:
        """Fill the pre-screening script template with numbered criteria"""
        study = study_name or "Clinical Trial"
        trial = study_name or "clinical trial"
        inclusion_lines = "\n".join(f"{i + 1}. {c}" for i, c in enumerate(inclusion))
        exclusion_lines = "\n".join(f"{i + 1}. {c}" for i, c in enumerate(exclusion))

        return f"""You are a clinical research operations specialist. Create a structured SYSTEM PROMPT for an AI voice agent that will conduct phone pre-screening for a clinical trial.

STUDY: {study}

INCLUSION CRITERIA:
{inclusion_lines}

EXCLUSION CRITERIA:
{exclusion_lines}

Create a system prompt with these sections:

# Role and Personality
You are a clinical trial coordinator conducting a pre-screening phone interview for the {trial}. You are friendly, professional, and empathetic. You speak in clear, simple language that anyone can understand.

# Critical Instructions - READ CAREFULLY
YOU MUST FOLLOW THIS EXACT WORKFLOW. DO NOT DEVIATE.

Your ONLY job is to:
1. After getting consent, ask the pre-screening questions listed below IN THE EXACT ORDER
2. Ask ONE question at a time
3. Wait for the participant's answer
4. Acknowledge their answer briefly (e.g., "Thank you" or "I understand")
5. Move to the NEXT question in the list
6. Repeat until ALL questions are asked
7. Provide the final eligibility determination

DO NOT:
- Ask which trial they're interested in (you're already screening for {study_name or 'the specific trial'})
- Ask for their name, contact info, or other demographics (that comes later)
- Skip any questions
- Ask any question more than once
- Ask questions out of order
- Ask questions not on the list below

# The Pre-Screening Questions (Ask in This Exact Order)

## Section 1: Inclusion Criteria
[For EACH inclusion criterion, write ONE clear yes/no question. Number them 1, 2, 3, etc.]

## Section 2: Exclusion Criteria
[For EACH exclusion criterion, write ONE clear yes/no question. Number them continuing from Section 1.]

# Example Flow
After consent:
"Great! Let me start with the first question..."
[Ask Question 1]
[Wait for answer]
"Thank you. Next question..."
[Ask Question 2]
[Continue through ALL questions]

# Final Response
After ALL questions are answered:
- If ALL inclusion = Yes AND ALL exclusion = No -> "Based on your responses, you may be eligible for this study! Our team will contact you with next steps."
- If ANY critical criterion fails -> "Thank you for your time. Based on your responses, you may not be eligible for this particular study at this time."
- If ANY answer needs clarification -> "Thank you. Some of your responses need further review by our study team. We'll be in touch soon."

Generate the complete system prompt now."""

    async def generate_script(self, inclusion: List[str], exclusion: List[str], study_name: Optional[str]) -> str:
        """Generate the voice agent system prompt from the criteria"""
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[self.build_script_prompt(inclusion, exclusion, study_name)],
            config=GenerateContentConfig(
                system_instruction=[self.script_system_prompt],
                temperature=0.2,
                max_output_tokens=4000,
            )
        )

        script = response.text or ""
        logger.info(f"Generated pre-screening script ({len(script)} characters)")
        return script

    async def transcribe_pages(self, page_images: List[bytes]) -> str:
        """Transcribe rendered pages in a single multimodal request"""
        contents = [
            types.Part.from_bytes(
                data=image_bytes,
                mime_type='image/jpeg',
            )
            for image_bytes in page_images
        ]
        contents.append(self.transcription_prompt)

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=GenerateContentConfig(
                temperature=0.1,
                max_output_tokens=8000,
            )
        )

        text = response.text or ""
        logger.info(f"Vision transcription returned {len(text)} characters from {len(page_images)} pages")
        return text
