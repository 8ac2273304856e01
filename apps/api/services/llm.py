import httpx
from google import genai
from google.genai import errors as genai_errors

from workers.generator.errors import BackendError, ErrorKind


def create_client(settings):
    # API key (Gemini Developer API) first, Vertex AI otherwise
    if settings.gemini_api_key:
        return genai.Client(api_key=settings.gemini_api_key)
    return genai.Client(
        vertexai=True, project=settings.project_id, location=settings.vertex_location
    )


def generate_content(client, **kwargs):
    """One backend call. Failures leave here as BackendError, already classified."""
    try:
        return client.models.generate_content(**kwargs)
    except genai_errors.APIError as e:
        message = getattr(e, "message", None) or str(e)
        raise BackendError.from_status(getattr(e, "code", None), message) from e
    except httpx.TransportError as e:
        # connection reset / read timeout against the backend
        raise BackendError(ErrorKind.TRANSIENT, None, f"{type(e).__name__}: {e}") from e
