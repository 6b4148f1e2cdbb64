"""Classify a homeowner's uploaded media into a repair job description."""
from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass
from typing import Any

from loguru import logger

from app.llm_client import client as llm_client, get_classifier_model
from app.models.schemas import MediaAnalysis
from app.services import logger as log_service
from app.services.prompt_store import render_prompt

CATEGORIES = (
    "Plumbing",
    "Electrical",
    "HVAC",
    "Roofing",
    "Carpentry",
    "Painting",
    "Landscaping",
    "Other",
)
INLINE_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_TOKENS = 2048


class MediaAnalysisError(RuntimeError):
    pass


@dataclass
class MediaFile:
    filename: str
    content_type: str
    data: bytes


def _media_block(media: MediaFile) -> dict[str, Any]:
    content_type = (media.content_type or "").lower()
    if content_type in INLINE_IMAGE_TYPES:
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": content_type,
                "data": base64.b64encode(media.data).decode("ascii"),
            },
        }
    # Video and audio cannot be sent to the Messages API; describe them instead.
    size_kb = len(media.data) // 1024
    return {
        "type": "text",
        "text": f"Attached file: {media.filename} ({content_type or 'unknown type'}, {size_kb} KB)",
    }


def build_content(files: list[MediaFile], description: str = "") -> list[dict[str, Any]]:
    content = [_media_block(media) for media in files]
    if description.strip():
        content.append({"type": "text", "text": f"User description: {description.strip()}"})
    content.append(
        {
            "type": "text",
            "text": render_prompt("classifier.instruction", categories=", ".join(CATEGORIES)),
        }
    )
    return content


def parse_analysis(raw_text: str) -> dict[str, Any]:
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise MediaAnalysisError("Classifier did not return a JSON object")
    try:
        payload = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise MediaAnalysisError(f"Classifier returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MediaAnalysisError("Classifier did not return a JSON object")

    if isinstance(payload.get("scopeOfWork"), str):
        payload["scopeOfWork"] = {"summary": payload["scopeOfWork"]}
    return MediaAnalysis.model_validate(payload).model_dump(by_alias=True)


async def analyze_media(
    files: list[MediaFile],
    description: str = "",
    *,
    model: str | None = None,
    client: Any = None,
) -> dict[str, Any]:
    """Ask the classifier model about the uploaded media; returns the analysis dict."""
    if not files:
        raise ValueError("No media files provided")

    model = model or get_classifier_model()
    active_client = client or llm_client()
    logger.info(f"Analyzing {len(files)} media files (description: {description[:80]!r})")

    t0 = time.monotonic()
    try:
        response = await active_client.messages.create(
            model=model,
            max_tokens=MAX_TOKENS,
            system=render_prompt("classifier.system_prompt"),
            messages=[{"role": "user", "content": build_content(files, description)}],
        )
    except Exception as exc:
        log_service.log_llm_call(
            model=model,
            caller="classifier",
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error",
            error=str(exc),
        )
        raise

    usage = getattr(response, "usage", None)
    log_service.log_llm_call(
        model=model,
        caller="classifier",
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
        duration_ms=int((time.monotonic() - t0) * 1000),
    )

    text = "\n".join(b.text for b in response.content if b.type == "text")
    analysis = parse_analysis(text)
    logger.info(f"Analysis complete: {analysis.get('category')} / {analysis.get('problemSummary', '')[:80]}")
    return analysis
