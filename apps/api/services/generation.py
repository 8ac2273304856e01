"""
Job handlers: generate-image and analyze-material.
Both call Gemini through the retry controller; generated images are stored in GCS.
"""
import base64
import binascii
import json
import logging
import mimetypes
import re
import time
from io import BytesIO
from typing import Optional

from google.genai import types
from PIL import Image
from pydantic import BaseModel

from workers.generator.cancel import check_cancelled
from workers.generator.errors import InvalidJobInput, NoAssetReturned
from workers.generator.job import JobRecord
from workers.generator.retry import policy_for, with_retry

from .llm import generate_content

LOGGER = logging.getLogger("aijobs.generation")

_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.S)

REFERENCE_PROMPT = """
You are given a REFERENCE IMAGE of an existing building.

STRICT RULES:
- Preserve geometry, massing, proportions
- Do NOT invent a new building
- Only adjust lighting, realism, materials

TASK:
{prompt}
"""

ANALYSIS_PROMPT = """
Identify the visible building materials in the reference image(s).
For each material give its name, the surface it covers and your confidence (0-1).
{prompt}
"""


class Material(BaseModel):
    name: str
    surface: str
    confidence: float


class MaterialAnalysis(BaseModel):
    materials: list[Material]
    summary: str


def _to_png(data: bytes) -> bytes:
    try:
        with Image.open(BytesIO(data)) as img:
            out = BytesIO()
            img.save(out, format="PNG")
    except (OSError, ValueError) as e:
        raise NoAssetReturned(f"undecodable image returned: {e}") from e
    return out.getvalue()


class GenerationHandlers:
    def __init__(self, client, blob_store, settings, sleep=time.sleep):
        self._client = client
        self._blobs = blob_store
        self._settings = settings
        self._sleep = sleep

    def handlers(self) -> dict:
        return {
            "generate-image": self.generate_image,
            "analyze-material": self.analyze_material,
        }

    def _reference_part(self, ref: str) -> types.Part:
        m = _DATA_URL.match(ref)
        if m:
            try:
                data = base64.b64decode(m.group(2), validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidJobInput(f"bad base64 reference image: {e}") from e
            return types.Part.from_bytes(data=data, mime_type=m.group(1))
        mime_type = mimetypes.guess_type(ref)[0] or "image/png"
        if ref.startswith("gs://"):
            return types.Part.from_uri(file_uri=ref, mime_type=mime_type)
        if "://" in ref or ref.startswith("data:"):
            raise InvalidJobInput(f"unsupported reference image locator: {ref[:40]}")
        return types.Part.from_bytes(data=self._blobs.get(ref), mime_type=mime_type)

    def _reference_parts(self, refs) -> list:
        if isinstance(refs, str):
            refs = [refs]
        return [self._reference_part(ref) for ref in refs or [] if ref]

    def _call(self, job: JobRecord, **kwargs):
        return with_retry(
            lambda: generate_content(self._client, **kwargs),
            policy_for(job),
            sleep=self._sleep,
        )

    def generate_image(self, job: JobRecord) -> dict:
        data = job.input
        prompt = (data.get("prompt") or "").strip()
        if not prompt:
            raise InvalidJobInput("prompt is required")
        config = data.get("config") or {}

        # Reference images FIRST, prompt after
        parts = self._reference_parts(data.get("referenceImages"))
        text = REFERENCE_PROMPT.format(prompt=prompt) if parts else prompt
        parts.append(types.Part.from_text(text=text))

        image_config = {}
        if config.get("imageSize"):
            image_config["image_size"] = config["imageSize"]
        if config.get("aspectRatio"):
            image_config["aspect_ratio"] = config["aspectRatio"]
        request_config: dict = {"response_modalities": ["TEXT", "IMAGE"]}
        if image_config:
            request_config["image_config"] = image_config

        model = config.get("model") or self._settings.default_image_model
        LOGGER.info(
            "generating image",
            extra={"job_id": job.id, "model": model, "references": len(parts) - 1},
        )
        resp = self._call(
            job,
            model=model,
            contents=[types.Content(role="user", parts=parts)],
            config=request_config,
        )
        image = _first_inline_image(resp)
        if image is None:
            raise NoAssetReturned()

        check_cancelled()
        path = f"{job.user_id or 'anonymous'}/{job.id}.png"
        self._blobs.put(path, _to_png(image), "image/png")
        url = self._blobs.url_for(path, self._settings.signed_url_ttl)
        return {"imageUrl": url, "storagePath": path}

    def analyze_material(self, job: JobRecord) -> dict:
        data = job.input
        parts = self._reference_parts(data.get("referenceImages"))
        if not parts:
            raise InvalidJobInput("referenceImages is required")
        parts.append(types.Part.from_text(text=ANALYSIS_PROMPT.format(prompt=data.get("prompt") or "")))
        resp = self._call(
            job,
            model=(data.get("config") or {}).get("model") or self._settings.analysis_model,
            contents=[types.Content(role="user", parts=parts)],
            config={
                "response_mime_type": "application/json",
                "response_schema": MaterialAnalysis,
                "temperature": 0.1,
            },
        )
        if not getattr(resp, "text", None):
            raise NoAssetReturned("NO_ANALYSIS_RETURNED")
        try:
            analysis = MaterialAnalysis.model_validate(json.loads(resp.text))
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise NoAssetReturned(f"malformed analysis: {e}") from e
        return {"analysis": analysis.model_dump()}


def _first_inline_image(resp) -> Optional[bytes]:
    candidates = getattr(resp, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return None
    for part in candidates[0].content.parts or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            data = inline.data
            # some transports hand back base64 text instead of bytes
            return base64.b64decode(data) if isinstance(data, str) else data
    return None
