"""
Ghibli Vision Edge Worker
HTTP-Triggered function exposing the image gateway at /api/worker/generate.

Same behavior as the FastAPI /api/generate endpoint, without the session and
free-usage gates, and with permissive CORS.
"""
import azure.functions as func
import json
import logging

from ghiblivision.gateway import GatewayConfig, ImageGateway, TransformRequest

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/worker/generate"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}

_gateway = None


def get_gateway() -> ImageGateway:
    """Gateway built from the function app settings on first use."""
    global _gateway
    if _gateway is None:
        _gateway = ImageGateway(GatewayConfig.from_env())
    return _gateway


def _json_response(body: dict, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(body),
        status_code=status_code,
        mimetype="application/json",
        headers=CORS_HEADERS
    )


def main(req: func.HttpRequest) -> func.HttpResponse:
    """
    HTTP Trigger handler for image generation.

    Expected multipart/form-data body:
        image: the photo to transform (required)
        provider: openai | stability | midjourney | leonardo (required)
        prompt: extra instructions (optional)
        apiKey: caller's own provider key (optional)
    """
    if req.method == "OPTIONS":
        return func.HttpResponse(status_code=200, headers=PREFLIGHT_HEADERS)

    if req.method != "POST" or not req.url.split("?", 1)[0].rstrip("/").endswith(GENERATE_PATH):
        return func.HttpResponse("Not Found", status_code=404)

    logger.info("Generate function triggered.")

    try:
        image_file = req.files.get("image")
        image_data = image_file.read() if image_file is not None else b""
        provider = req.form.get("provider")

        if not image_data or not provider:
            return _json_response({"error": "Missing required fields"}, status_code=400)

        request = TransformRequest(
            image_data=image_data,
            provider=provider,
            prompt=req.form.get("prompt") or "",
            api_key=req.form.get("apiKey") or None,
            mime_type=image_file.content_type or "image/png",
        )
        result = get_gateway().transform(request)

    except Exception as e:
        logger.error(f"Critical error: {e}")
        return _json_response({"error": str(e) or "Unknown error occurred"}, status_code=500)

    if not result.success:
        return _json_response({"error": result.message}, status_code=500)

    return _json_response({
        "success": True,
        "imageUrl": result.image_url,
        "provider": result.provider.value,
    })
