"""
FastAPI Clinical Trial Pre-Screening API
Main application entry point
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import models and services
from prescreen_api import __version__
from prescreen_api.models.schemas import (
    ExtractCriteriaResponse,
    GenerateScriptRequest,
    GenerateScriptResponse,
    CreateVoiceAgentRequest,
    CreateVoiceAgentResponse,
    InitiateCallRequest,
    InitiateCallResponse,
)
from prescreen_api.services.gemini_service import GeminiService
from prescreen_api.services.document_service import DocumentService, DocumentError, PDFProcessingError
from prescreen_api.services.voice_agent_service import VoiceAgentService, VoiceAgentError
from prescreen_api.config import settings

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize services
gemini_service = GeminiService(settings.GEMINI_API_KEY, settings.GEMINI_MODEL)
document_service = DocumentService(
    gemini_service,
    batch_size=settings.PDF_BATCH_SIZE,
    max_pages=settings.PDF_MAX_PAGES,
    overscan_batches=settings.PDF_OVERSCAN_BATCHES,
    min_text_layer_chars=settings.MIN_TEXT_LAYER_CHARS,
    min_document_chars=settings.MIN_DOCUMENT_CHARS,
    vision_max_pages=settings.VISION_MAX_PAGES,
    vision_default_pages=settings.VISION_DEFAULT_PAGES,
    vision_dpi=settings.VISION_DPI,
)
voice_agent_service = VoiceAgentService(
    settings.ELEVENLABS_API_KEY,
    base_url=settings.ELEVENLABS_BASE_URL,
    agent_llm=settings.ELEVENLABS_AGENT_LLM,
    timeout=settings.ELEVENLABS_TIMEOUT,
    default_country_code=settings.DEFAULT_COUNTRY_CODE,
)

GEMINI_KEY_MISSING = "Gemini API key not configured. Please add GEMINI_API_KEY to your .env file"

# Initialize FastAPI app
app = FastAPI(
    title="Clinical Trial Pre-Screening API",
    description="Extracts eligibility criteria from trial protocols, generates phone pre-screening scripts and places calls through an ElevenLabs voice agent",
    version=__version__
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """Render every HTTP error as {"error": message}"""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', []))}: {err.get('msg')}"
        for err in exc.errors()
    )
    logger.warning(f"Invalid request to {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {errors}"})

@app.on_event("startup")
async def startup_event():
    """Warn about missing upstream credentials"""
    if not gemini_service.is_configured:
        logger.warning("GEMINI_API_KEY is not set - criteria extraction and script generation will fail")
    if not voice_agent_service.is_configured:
        logger.warning("ELEVENLABS_API_KEY is not set - voice agent creation and calls will fail")

@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "message": "Clinical Trial Pre-Screening API is running",
        "version": __version__,
        "status": "active"
    }

@app.get("/health")
async def health_check():
    """Health check reporting which upstream APIs are configured"""
    return {
        "status": "healthy",
        "gemini_configured": gemini_service.is_configured,
        "elevenlabs_configured": voice_agent_service.is_configured,
        "timestamp": datetime.now().isoformat()
    }

@app.post("/api/extract-criteria", response_model=ExtractCriteriaResponse)
async def extract_criteria(file: Optional[UploadFile] = File(None)):
    """
    Upload a protocol document and extract its eligibility criteria

    Args:
        file: PDF, DOCX or TXT protocol document

    Returns:
        ExtractCriteriaResponse with criteria and a text preview
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        document_service.resolve_media_type(file.filename, file.content_type)
    except DocumentError as e:
        logger.warning(f"Rejected {file.filename}: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    if not gemini_service.is_configured:
        raise HTTPException(status_code=500, detail=GEMINI_KEY_MISSING)

    logger.info(f"Received {file.filename} ({len(data) / 1024:.2f} KB, {file.content_type})")

    try:
        document_text = await document_service.extract_text(data, file.filename, file.content_type)
    except DocumentError as e:
        logger.warning(f"Rejected {file.filename}: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))
    except PDFProcessingError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error(f"Error reading {file.filename}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to process document")

    try:
        criteria = await gemini_service.extract_criteria(document_text)
    except Exception as e:
        logger.error(f"Error processing document: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to process document")

    preview_chars = settings.PREVIEW_CHARS
    return ExtractCriteriaResponse(
        file_name=file.filename,
        criteria=criteria,
        document_preview=document_text[:preview_chars] + "...",
    )

@app.post("/api/generate-script", response_model=GenerateScriptResponse)
async def generate_script(request: GenerateScriptRequest):
    """Generate a phone pre-screening script from extracted criteria"""
    if request.inclusion is None or request.exclusion is None:
        raise HTTPException(status_code=400, detail="Missing inclusion or exclusion criteria")

    if not gemini_service.is_configured:
        raise HTTPException(status_code=500, detail=GEMINI_KEY_MISSING)

    logger.info("Generating pre-screening script...")

    try:
        script = await gemini_service.generate_script(request.inclusion, request.exclusion, request.study_name)
    except Exception as e:
        logger.error(f"Error generating script: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to generate script")

    return GenerateScriptResponse(script=script)

@app.post("/api/create-voice-agent", response_model=CreateVoiceAgentResponse)
async def create_voice_agent(request: CreateVoiceAgentRequest):
    """Create an ElevenLabs agent from the script and bind it to a phone number"""
    if not request.script:
        raise HTTPException(status_code=400, detail="Missing script")

    try:
        agent = await voice_agent_service.create_agent(request.script, request.study_name)
    except VoiceAgentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating voice agent: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to create voice agent")

    return CreateVoiceAgentResponse(
        agent_id=agent["agent_id"],
        agent_url=agent["agent_url"],
        message="Voice agent created successfully",
    )

@app.post("/api/initiate-call", response_model=InitiateCallResponse)
async def initiate_call(request: InitiateCallRequest):
    """Place an outbound pre-screening call with a provisioned agent"""
    if not request.phone_number or not request.agent_id:
        raise HTTPException(status_code=400, detail="Phone number and agent ID are required")

    try:
        call = await voice_agent_service.initiate_call(request.phone_number, request.agent_id)
    except VoiceAgentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error initiating call: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to initiate call")

    return InitiateCallResponse(
        conversation_id=call["conversation_id"],
        call_sid=call["call_sid"],
        message=call["message"],
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
