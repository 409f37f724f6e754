import os
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel


# ========== STEP 1: LOAD ENVIRONMENT VARIABLES ==========
# Must happen BEFORE importing modules that read env vars
from dotenv import load_dotenv
load_dotenv(override=True)


# ========== STEP 2: INITIALIZE TELEMETRY ==========
from echo_mindmap.api.telemetry import setup_telemetry
setup_telemetry()


# ========== STEP 3: IMPORT THE PIPELINE ==========
from echo_mindmap.errors import PipelineError
from echo_mindmap.graph.document import GraphDocument
from echo_mindmap.graph.state import UrlSource
from echo_mindmap.pipeline import analyze, save_upload


# ========== STEP 4: CONFIGURE LOGGING ==========
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api-server")


# ========== STEP 5: CREATE FASTAPI APPLICATION ==========
app = FastAPI(
    title="Echo Mind Map API",
    description="Turns YouTube videos, video files and PDFs into mind map graphs.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== STEP 6: DEPENDENCIES ==========
def get_pipeline_services() -> Dict[str, Any]:
    """Services handed to the pipeline; empty means build them from the environment."""
    return {}


def get_upload_dir() -> str:
    return os.getenv("UPLOAD_DIR", "uploads")


# ========== STEP 7: DATA MODELS ==========
class AnalyzeUrlRequest(BaseModel):
    """
    Example valid request:
    {
        "url": "https://youtu.be/abc123"
    }
    """
    url: Optional[str] = None


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request")


async def run_pipeline(source, services: Dict[str, Any], fallback_message: str):
    """Runs one pipeline and maps every failure to a {error} response."""
    try:
        document = await analyze(source, services)
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return error_response(500, e.public_message)
    except Exception as e:
        logger.exception(f"Unexpected pipeline failure: {e}")
        return error_response(500, fallback_message)
    return document


# ========== STEP 8: ENDPOINTS ==========
@app.post("/api/analyze-youtube", response_model=GraphDocument, response_model_exclude_none=True)
async def analyze_youtube(
    request: Optional[AnalyzeUrlRequest] = None,
    services: Dict[str, Any] = Depends(get_pipeline_services),
):
    url = (request.url or "").strip() if request else ""
    if not url:
        return error_response(400, "URL required")

    logger.info(f"Received YouTube URL: {url}")
    return await run_pipeline(UrlSource(url), services, "AI processing failed")


async def handle_file(
    upload: Optional[UploadFile],
    label: str,
    default_mime_type: str,
    services: Dict[str, Any],
    upload_dir: str,
):
    if upload is None or not upload.filename:
        return error_response(400, "File missing")

    logger.info(f"Received {label} upload: {upload.filename}")
    try:
        source = await save_upload(
            upload.file,
            upload.filename,
            upload.content_type,
            upload_dir,
            default_mime_type=default_mime_type,
        )
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return error_response(500, e.public_message)
    except Exception as e:
        logger.exception(f"Could not store {label} upload: {e}")
        return error_response(500, "File analysis failed")
    finally:
        await upload.close()

    return await run_pipeline(source, services, "File analysis failed")


@app.post("/api/analyze-video", response_model=GraphDocument, response_model_exclude_none=True)
async def analyze_video(
    video: Optional[UploadFile] = File(None),
    services: Dict[str, Any] = Depends(get_pipeline_services),
    upload_dir: str = Depends(get_upload_dir),
):
    return await handle_file(video, "video", "video/mp4", services, upload_dir)


@app.post("/api/analyze-pdf", response_model=GraphDocument, response_model_exclude_none=True)
async def analyze_pdf(
    pdf: Optional[UploadFile] = File(None),
    services: Dict[str, Any] = Depends(get_pipeline_services),
    upload_dir: str = Depends(get_upload_dir),
):
    return await handle_file(pdf, "pdf", "application/pdf", services, upload_dir)


# ========== STEP 9: HEALTH CHECK ENDPOINTS ==========
@app.get("/", response_class=PlainTextResponse)
def root():
    return "Echo API running"


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Echo Mind Map API"}


'''
To execute:
uvicorn echo_mindmap.api.server:app --reload

Access points:
- API Docs:    http://localhost:8000/docs
- Health:      http://localhost:8000/health
- Main API:    POST http://localhost:8000/api/analyze-youtube
               POST http://localhost:8000/api/analyze-video  (multipart field "video")
               POST http://localhost:8000/api/analyze-pdf    (multipart field "pdf")
'''
