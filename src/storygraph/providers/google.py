"""Google Cloud REST implementations: GCS mirror, Gemini on Vertex, Video Intelligence."""

from __future__ import annotations

import sys
from urllib.parse import quote

import requests

from storygraph.core.config import StoryGraphConfig
from storygraph.core.constants import (
    GCS_API_BASE,
    HTTP_TIMEOUT_SEC,
    UPLOAD_TIMEOUT_SEC,
    VIDEO_INTELLIGENCE_API_BASE,
)
from storygraph.core.exceptions import APIError, InferenceError, MirrorError
from storygraph.db.models import Asset
from storygraph.providers.base import (
    AnnotationProvider,
    BlobMirror,
    InferenceProvider,
    OperationStatus,
)
from storygraph.utils.media import local_media_path, media_key


def _session(config: StoryGraphConfig) -> requests.Session:
    if not config.access_token:
        raise APIError("No access token configured (set SG_ACCESS_TOKEN)", provider="google")
    session = requests.Session()
    session.headers["Authorization"] = f"Bearer {config.access_token}"
    return session


def _error_message(resp: requests.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f"{fallback} (HTTP {resp.status_code})"
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return err["message"]
    return f"{fallback} (HTTP {resp.status_code})"


class GCSMirror(BlobMirror):
    """Copies assets from the local media root into the analysis bucket."""

    def __init__(self, config: StoryGraphConfig, session: requests.Session | None = None):
        self.config = config
        self.bucket = config.bucket
        self.session = session or _session(config)

    def uri_for(self, asset: Asset) -> str:
        return f"gs://{self.bucket}/{media_key(asset)}"

    def exists(self, asset: Asset) -> bool:
        url = f"{GCS_API_BASE}/storage/v1/b/{self.bucket}/o/{quote(media_key(asset), safe='')}"
        try:
            resp = self.session.get(url, timeout=HTTP_TIMEOUT_SEC)
        except requests.exceptions.RequestException as e:
            raise MirrorError(f"Bucket lookup failed for {asset.filename}: {e}", provider="gcs") from e
        if resp.status_code == 404:
            return False
        if not resp.ok:
            raise MirrorError(
                _error_message(resp, "Bucket lookup failed"), provider="gcs", status_code=resp.status_code
            )
        return True

    def ensure_mirrored(self, asset: Asset) -> None:
        if self.exists(asset):
            return

        source = local_media_path(asset, self.config.media_root)
        if not source.is_file():
            raise MirrorError(f"Local media not found for mirroring: {source}", provider="gcs")

        print(f"  Mirroring to GCS: {media_key(asset)}", file=sys.stderr)
        url = f"{GCS_API_BASE}/upload/storage/v1/b/{self.bucket}/o"
        try:
            with open(source, "rb") as f:
                resp = self.session.post(
                    url,
                    params={"uploadType": "media", "name": media_key(asset)},
                    headers={"Content-Type": asset.mime_type or "application/octet-stream"},
                    data=f,
                    timeout=UPLOAD_TIMEOUT_SEC,
                )
        except requests.exceptions.RequestException as e:
            raise MirrorError(f"Mirroring to GCS failed: {e}", provider="gcs") from e
        if not resp.ok:
            raise MirrorError(
                _error_message(resp, "Mirroring to GCS failed. Check bucket permissions"),
                provider="gcs",
                status_code=resp.status_code,
            )


class VertexInference(InferenceProvider):
    """Single-shot Gemini call on Vertex AI, reading media straight from the bucket."""

    def __init__(self, config: StoryGraphConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or _session(config)

    @property
    def endpoint(self) -> str:
        loc = self.config.gcp_location
        return (
            f"https://{loc}-aiplatform.googleapis.com/v1/projects/{self.config.gcp_project}"
            f"/locations/{loc}/publishers/google/models/{self.config.inference_model}:generateContent"
        )

    def infer(self, media_uri: str, mime_type: str, prompt: str) -> str:
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"fileData": {"mimeType": mime_type, "fileUri": media_uri}},
                        {"text": prompt},
                    ],
                }
            ]
        }
        try:
            resp = self.session.post(self.endpoint, json=body, timeout=HTTP_TIMEOUT_SEC)
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Inference request failed: {e}", provider="vertex") from e
        if not resp.ok:
            raise InferenceError(
                _error_message(resp, "Category inference failed"),
                provider="vertex",
                status_code=resp.status_code,
            )
        data = resp.json()
        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or [{}]
        return (parts[0].get("text") or "").strip()


class VideoIntelligenceAnnotator(AnnotationProvider):
    """Long-running annotation jobs (speech transcription, label and shot detection)."""

    def __init__(self, config: StoryGraphConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or _session(config)

    def submit(self, media_uri: str, features: list[str], context: dict) -> str:
        body = {"inputUri": media_uri, "features": features, "videoContext": context}
        try:
            resp = self.session.post(
                f"{VIDEO_INTELLIGENCE_API_BASE}/videos:annotate", json=body, timeout=HTTP_TIMEOUT_SEC
            )
        except requests.exceptions.RequestException as e:
            raise APIError(f"Annotation request failed: {e}", provider="videointelligence") from e
        if not resp.ok:
            raise APIError(
                _error_message(resp, "Cloud analysis error"),
                provider="videointelligence",
                status_code=resp.status_code,
            )
        handle = resp.json().get("name")
        if not handle:
            raise APIError("Annotation response carried no operation name", provider="videointelligence")
        return handle

    def poll(self, handle: str) -> OperationStatus:
        try:
            resp = self.session.get(f"{VIDEO_INTELLIGENCE_API_BASE}/{handle}", timeout=HTTP_TIMEOUT_SEC)
        except requests.exceptions.RequestException as e:
            raise APIError(f"Operation poll failed: {e}", provider="videointelligence") from e
        if not resp.ok:
            raise APIError(
                _error_message(resp, "Operation poll failed"),
                provider="videointelligence",
                status_code=resp.status_code,
            )
        data = resp.json()
        error = data.get("error")
        return OperationStatus(
            done=bool(data.get("done")),
            response=data.get("response") or {},
            error=error.get("message") if isinstance(error, dict) else None,
        )
