import base64
import binascii
import logging
import re
import threading
from typing import List, Optional
from urllib.parse import urlparse

import requests
from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from .gateway import GatewayConfig, GatewayError, ImageGateway, Provider, TransformRequest
from .profiles import ProfileStore, free_generations_limit

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MISSING_FIELDS = "Missing required fields"
FREE_USAGE_EXHAUSTED = "Free image generations already used. Please provide API key or subscribe."
DOWNLOAD_FILENAME = "ghibli-transformation.png"
DOWNLOAD_TIMEOUT = 60

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

app = FastAPI(
    title="Ghibli Vision",
    description="Studio Ghibli style image transformation across multiple AI providers",
    version="1.0.0"
)
gateway = ImageGateway(GatewayConfig.from_env())
profile_store = ProfileStore()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as {"error": message}."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


def get_gateway() -> ImageGateway:
    return gateway


def get_profile_store() -> ProfileStore:
    return profile_store


def get_free_generations_limit() -> int:
    return free_generations_limit()


def get_current_user(user_id: str = Header(None, alias="X-User-Id")) -> str:
    """
    Identify the caller from the header set by the authentication front.
    """
    if not user_id or not USER_ID_PATTERN.match(user_id):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


class GenerateResponse(BaseModel):
    """Response from a successful transformation."""
    success: bool = True
    imageUrl: str = Field(description="http(s) URL or data URL of the generated image")
    provider: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "imageUrl": "https://example.com/generated.png",
                "provider": "openai"
            }
        }


class ProfileResponse(BaseModel):
    """Usage state of the calling user."""
    user_id: str
    subscription_tier: str
    free_generations_used: int
    free_generations_left: int
    providers_with_keys: List[str]


# =============================================================================
# Generation Endpoints
# =============================================================================

@app.post("/api/generate", response_model=GenerateResponse, tags=["Generate"])
async def generate_image(
    background_tasks: BackgroundTasks,
    image: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    provider: Optional[str] = Form(None),
    apiKey: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user),
    gateway: ImageGateway = Depends(get_gateway),
    profiles: ProfileStore = Depends(get_profile_store),
    free_limit: int = Depends(get_free_generations_limit),
):
    """
    Transform an uploaded image into Studio Ghibli style.

    The free-usage gate is applied before any provider is called. A request
    with no API key (neither in the form nor stored on the profile) from a
    free-tier user consumes one free generation when it succeeds.

    The gate reads the counter before the provider call and the increment runs
    after the response, so concurrent requests from one user can each pass the
    gate while a generation is in flight. The increment itself never loses a
    count (see ProfileStore.increment_free_usage).
    """
    image_data = await image.read() if image is not None else b""
    if not image_data or not provider:
        raise HTTPException(status_code=400, detail=MISSING_FIELDS)

    try:
        selected = gateway.resolve_provider(provider)
        profile = profiles.get_profile(user_id)

        consumes_free = profile.consumes_free_generation(selected.value, apiKey)
        if consumes_free and profile.free_generations_left(free_limit) <= 0:
            logger.info(f"User {user_id} has no free generations left")
            raise HTTPException(status_code=403, detail=FREE_USAGE_EXHAUSTED)

        request = TransformRequest(
            image_data=image_data,
            provider=selected.value,
            prompt=prompt or "",
            api_key=apiKey or profile.stored_key(selected.value),
            mime_type=image.content_type or "image/png",
        )

        # Stops a provider poll loop if this request is abandoned
        cancel = threading.Event()
        try:
            result = await run_in_threadpool(gateway.transform, request, cancel)
        finally:
            cancel.set()

    except HTTPException:
        raise
    except GatewayError as e:
        raise HTTPException(status_code=500, detail=e.message)
    except Exception as e:
        logger.error(f"Generate error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if not result.success:
        raise HTTPException(status_code=500, detail=result.message)

    if consumes_free:
        background_tasks.add_task(profiles.increment_free_usage, user_id)

    return GenerateResponse(success=True, imageUrl=result.image_url, provider=selected.value)


@app.get("/api/download", tags=["Download"])
def download_image(url: Optional[str] = Query(None, description="URL of the generated image")):
    """
    Proxy a generated image back to the browser as an attachment.
    """
    if not url:
        raise HTTPException(status_code=400, detail="Image URL is required")

    headers = {
        "Content-Disposition": f'attachment; filename="{DOWNLOAD_FILENAME}"',
        "Cache-Control": "no-cache",
    }

    # Stability results arrive as data URLs
    match = DATA_URL_PATTERN.match(url)
    if match:
        try:
            content = base64.b64decode(match.group("data"), validate=True)
        except binascii.Error:
            raise HTTPException(status_code=400, detail="Invalid image URL")
        return Response(content=content, media_type=match.group("mime"), headers=headers)

    if urlparse(url).scheme not in ("http", "https"):
        raise HTTPException(status_code=400, detail="Invalid image URL")

    try:
        response = requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.error(f"Error downloading image: {e}")
        raise HTTPException(status_code=500, detail="Failed to download image")

    if not response.ok:
        response.close()
        raise HTTPException(status_code=response.status_code, detail="Failed to fetch image from source")

    media_type = response.headers.get("content-type") or "image/png"
    return StreamingResponse(
        response.iter_content(chunk_size=64 * 1024),
        media_type=media_type,
        headers=headers,
        background=BackgroundTask(response.close),
    )


@app.get("/api/providers", tags=["Providers"])
def list_providers(gateway: ImageGateway = Depends(get_gateway)):
    """
    List available AI providers and whether an operator default key is configured.
    """
    return {
        "providers": [
            {
                "name": provider.value,
                "description": provider.display_name,
                "configured": gateway.config.is_configured(provider),
                "required_env_vars": [GatewayConfig.ENV_API_KEYS[provider]],
            }
            for provider in Provider
        ]
    }


@app.get("/api/profile", response_model=ProfileResponse, tags=["Profile"])
def read_profile(
    user_id: str = Depends(get_current_user),
    profiles: ProfileStore = Depends(get_profile_store),
    free_limit: int = Depends(get_free_generations_limit),
):
    """
    Usage state of the calling user. Stored key values are never returned.
    """
    profile = profiles.get_profile(user_id)
    return ProfileResponse(
        user_id=profile.user_id,
        subscription_tier=profile.subscription_tier,
        free_generations_used=profile.free_generations_used,
        free_generations_left=profile.free_generations_left(free_limit),
        providers_with_keys=sorted(name for name, key in profile.custom_api_keys.items() if key),
    )
